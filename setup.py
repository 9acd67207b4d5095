#+
# Setuptools script to install DBusAPI. Make sure setuptools
# <https://setuptools.pypa.io/en/latest/index.html> is installed.
# Invoke from the command line in this directory as follows:
#
#     python3 setup.py build
#     sudo python3 setup.py install
#
# or just use pip. DBusAPI needs DBussy, which in turn needs libdbus.
#-

import sys
import ctypes.util
import setuptools
from setuptools.command.build_py import \
    build_py as std_build_py

class my_build_py(std_build_py) :
    "customization of build to perform additional validation."

    def run(self) :
        if ctypes.util.find_library("dbus-1") == None :
            sys.stderr.write \
              (
                "Warning: libdbus not found; DBusAPI will not be importable without it.\n"
              )
        #end if
        super().run()
    #end run

#end my_build_py

setuptools.setup \
  (
    name = "DBusAPI",
    version = "1.0",
    description = "retrying method calls and typed property access for D-Bus services, on top of DBussy",
    long_description = "retrying method calls and typed property access for D-Bus services, on top of DBussy",
    author = "the DBusAPI authors",
    license = "LGPL v2.1+",
    python_requires = ">= 3.7",
    py_modules = ["dbusapi", "dbusvariant"],
    install_requires = ["DBussy >= 1.3"],
    extras_require =
        {
            "test" : ["pytest >= 7"],
        },
    cmdclass =
        {
            "build_py" : my_build_py,
        },
  )
