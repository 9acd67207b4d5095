"""
Resilient method calls and property access for a single D-Bus service, on
top of dbussy. Failures that the service reports under one of a configured
set of D-Bus error names are taken to be transient, and the call is retried
a bounded number of times; everything else is reported straight away, with
enough context to locate the failing call.

All calls block the calling thread. A DBusApi and its connection are not
meant to be used from more than one thread at a time.
"""
#+
# Copyright 2026 the DBusAPI authors.
# Licensed under the GNU Lesser General Public License v2.1 or later.
#-

import time
import logging
import dbussy as dbus
from dbussy import \
    DBUS
from dbusvariant import \
    DBusAPIError, \
    ConversionMismatch, \
    Variant, \
    TARGET, \
    variant_to, \
    get, \
    extract_variant, \
    variant_to_bytes

_logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 15 # seconds
RETRIES_ALLOWED = 10
RETRY_DELAY = 1 # seconds

#+
# Errors
#-

class TransportError(DBusAPIError) :
    "a failure reported by the bus, identified by its D-Bus error name."

    __slots__ = ("name", "details")

    def __init__(self, name, details) :
        super().__init__("%s -- %s" % (name, details))
        self.name = name
        self.details = details
    #end __init__

#end TransportError

class TransientTransportError(TransportError) :
    "a transport failure whose name is in the retry list. Only seen by callers" \
    " as the cause of a RetriesExhausted."
#end TransientTransportError

class FatalTransportError(TransportError) :
    "a transport failure that is not worth retrying."
#end FatalTransportError

class RetriesExhausted(DBusAPIError) :
    "a method call kept failing transiently until the retry budget ran out."

    __slots__ = ("attempts",)

    def __init__(self, attempts) :
        super().__init__("Method call failed after %d retries" % attempts)
        self.attempts = attempts
    #end __init__

#end RetriesExhausted

class MalformedCall(DBusAPIError) :
    "a method call could not be constructed, e.g. because of an invalid object path."
#end MalformedCall

class MethodCallError(DBusAPIError) :
    "reports the failure of a method call. The underlying error is available as" \
    " __cause__."

    __slots__ = ("interface", "method", "path")

    def __init__(self, interface, method, path) :
        super().__init__("%s::%s method call failed on %s" % (interface, method, path))
        self.interface = interface
        self.method = method
        self.path = path
    #end __init__

#end MethodCallError

class PropertyError(DBusAPIError) :
    "reports the failure to get a property value. The underlying error is available" \
    " as __cause__."

    __slots__ = ("interface", "name", "path", "details")

    def __init__(self, interface, name, path, details) :
        super().__init__("Get %s::%s property failed on %s: %s" % (interface, name, path, details))
        self.interface = interface
        self.name = name
        self.path = path
        self.details = details
    #end __init__

#end PropertyError

#+
# Configuration
#-

class RetryPolicy :
    "which transport failures are worth retrying, how many attempts to make in all," \
    " and how long to wait between them. The delay is constant."

    __slots__ = ("error_names", "max_retries", "delay") # to forestall typos

    def __init__(self, error_names, max_retries = RETRIES_ALLOWED, delay = RETRY_DELAY) :
        if not isinstance(error_names, str) :
            error_names = tuple(error_names)
        #end if
        if isinstance(error_names, str) or not all(isinstance(name, str) for name in error_names) :
            raise TypeError("error_names must be a sequence of str")
        #end if
        if not isinstance(max_retries, int) or isinstance(max_retries, bool) :
            raise TypeError("max_retries must be an int")
        #end if
        if max_retries < 1 :
            raise ValueError("max_retries must be at least 1")
        #end if
        if not isinstance(delay, (int, float)) or isinstance(delay, bool) :
            raise TypeError("delay must be a number of seconds")
        #end if
        if delay < 0 :
            raise ValueError("delay cannot be negative")
        #end if
        self.error_names = error_names
        self.max_retries = max_retries
        self.delay = delay
    #end __init__

    def is_transient(self, name) :
        "is name one of the error names to be retried."
        return \
            name in self.error_names
    #end is_transient

    def classify(self, error) :
        "wraps a dbussy.DBusError in a TransientTransportError or a FatalTransportError" \
        " according to its name."
        if self.is_transient(error.name) :
            _logger.debug("Should retry D-Bus method call: %s", error.name)
            result = TransientTransportError(error.name, error.message)
        else :
            result = FatalTransportError(error.name, error.message)
        #end if
        result.__cause__ = error
        return \
            result
    #end classify

    def __repr__(self) :
        return \
            (
                "%s(%s, max_retries = %d, delay = %s)"
            %
                (type(self).__name__, repr(self.error_names), self.max_retries, repr(self.delay))
            )
    #end __repr__

#end RetryPolicy

class Config :
    "settings for a DBusApi:\n" \
    "  * base -- the bus name of the service that all calls go to\n" \
    "  * method_retry_error_names -- the D-Bus error names that mark a failed method" \
        " call as worth retrying\n" \
    "  * method_timeout -- seconds to wait for each reply, default DEFAULT_TIMEOUT."

    __slots__ = ("base", "method_retry_error_names", "method_timeout") # to forestall typos

    def __init__(self, *, base, method_retry_error_names, method_timeout = None) :
        if not isinstance(base, str) :
            raise TypeError("base must be a str")
        #end if
        try :
            dbus.validate_bus_name(base)
        except dbus.DBusError as err :
            raise ValueError("invalid bus name %s: %s" % (repr(base), err.message)) from err
        #end try
        if not isinstance(method_retry_error_names, str) :
            method_retry_error_names = tuple(method_retry_error_names)
        #end if
        if (
                isinstance(method_retry_error_names, str)
            or
                not all(isinstance(name, str) for name in method_retry_error_names)
        ) :
            raise TypeError("method_retry_error_names must be a sequence of str")
        #end if
        if method_timeout == None :
            method_timeout = DEFAULT_TIMEOUT
        elif not isinstance(method_timeout, (int, float)) or isinstance(method_timeout, bool) :
            raise TypeError("method_timeout must be a number of seconds")
        elif method_timeout <= 0 :
            raise ValueError("method_timeout must be positive")
        #end if
        self.base = base
        self.method_retry_error_names = method_retry_error_names
        self.method_timeout = method_timeout
    #end __init__

    @classmethod
    def from_mapping(celf, mapping) :
        "builds a Config from a dict (e.g. loaded from a settings file) with the keys" \
        " base, method_retry_error_names and optionally method_timeout."
        unknown = set(mapping) - set(celf.__slots__)
        if len(unknown) != 0 :
            raise KeyError("unrecognized config keys: %s" % ", ".join(sorted(unknown)))
        #end if
        missing = {"base", "method_retry_error_names"} - set(mapping)
        if len(missing) != 0 :
            raise KeyError("missing config keys: %s" % ", ".join(sorted(missing)))
        #end if
        return \
            celf(**mapping)
    #end from_mapping

    @property
    def retry_policy(self) :
        "a RetryPolicy with the configured error names and the default limits."
        return \
            RetryPolicy(self.method_retry_error_names)
    #end retry_policy

#end Config

#+
# Messages
#-

def _validate(kind, validator, name) :
    # raises MalformedCall if name fails the given libdbus syntax check.
    if not isinstance(name, str) :
        raise TypeError("%s must be a str" % kind)
    #end if
    try :
        valid = validator(name)
    except dbus.DBusError as err :
        raise MalformedCall("invalid %s %s: %s" % (kind, repr(name), err.message)) from err
    #end try
    if not valid :
        raise MalformedCall("invalid %s %s" % (kind, repr(name)))
    #end if
#end _validate

class MethodCall :
    "a complete description of a method call to be sent: destination bus name," \
    " object path, interface, method name and a sequence of Variant arguments." \
    " The names are checked on construction, raising MalformedCall if they are" \
    " not valid."

    __slots__ = ("destination", "path", "interface", "method", "args") # to forestall typos

    def __init__(self, destination, path, interface, method, args = ()) :
        args = tuple(args)
        if not all(isinstance(arg, Variant) for arg in args) :
            raise TypeError("args must be Variants")
        #end if
        _validate("bus name", dbus.validate_bus_name, destination)
        _validate("object path", dbus.validate_path, path)
        _validate("interface name", dbus.validate_interface, interface)
        _validate("method name", dbus.validate_member, method)
        self.destination = destination
        self.path = path
        self.interface = interface
        self.method = method
        self.args = args
    #end __init__

    @property
    def signature(self) :
        "the signature of all the arguments together."
        return \
            "".join(arg.signature for arg in self.args)
    #end signature

    def __repr__(self) :
        return \
            (
                "%s(%s, %s, %s, %s, %s)"
            %
                (
                    type(self).__name__,
                    repr(self.destination),
                    repr(self.path),
                    repr(self.interface),
                    repr(self.method),
                    repr(self.args),
                )
            )
    #end __repr__

#end MethodCall

class Response :
    "the arguments of a method-return message, as a tuple of Variants."

    __slots__ = ("args",) # to forestall typos

    def __init__(self, args = ()) :
        args = tuple(args)
        if not all(isinstance(arg, Variant) for arg in args) :
            raise TypeError("args must be Variants")
        #end if
        self.args = args
    #end __init__

    @classmethod
    def from_message(celf, message) :
        "captures all the arguments of a dbussy.Message."
        return \
            celf(Variant.from_iter(iter) for iter in message.iter_init())
    #end from_message

    @property
    def signature(self) :
        return \
            "".join(arg.signature for arg in self.args)
    #end signature

    def __len__(self) :
        return \
            len(self.args)
    #end __len__

    def __repr__(self) :
        return \
            "%s(%s)" % (type(self).__name__, repr(self.args))
    #end __repr__

#end Response

def extract(response, target) :
    "returns the first argument of response, which must be exactly of the type given" \
    " by target (a TARGET or a signature string). Raises ConversionMismatch if it is" \
    " missing or of a different type."
    if len(response.args) > 0 :
        result = get(response.args[0], target)
    else :
        result = None
    #end if
    if result == None :
        raise ConversionMismatch("Wrong response type: got “%s”" % response.signature)
    #end if
    return \
        result
#end extract

def extract_two(response, target1, target2) :
    "returns the first two arguments of response, which must be exactly of the types" \
    " given by target1 and target2. Raises ConversionMismatch if either is missing or" \
    " of a different type."
    if len(response.args) > 1 :
        first = get(response.args[0], target1)
        second = get(response.args[1], target2)
    else :
        first = second = None
    #end if
    if first == None or second == None :
        raise ConversionMismatch("Wrong response type: got “%s”" % response.signature)
    #end if
    return \
        first, second
#end extract_two

#+
# Connection
#-

class BusConnection :
    "the transport used by DBusApi: a thin wrapper around a dbussy.Connection that" \
    " deals in MethodCall, Response and Variant objects. Failures are raised as" \
    " dbussy.DBusError, with the D-Bus error name in the name attribute.\n" \
    "\n" \
    "Only one call may be in flight at a time; if a BusConnection is to be shared" \
    " between threads, the caller must serialize access to it."

    __slots__ = ("connection", "private") # to forestall typos

    def __init__(self, connection, private = False) :
        self.connection = connection
        self.private = private
    #end __init__

    @classmethod
    def bus_get(celf, type = DBUS.BUS_SYSTEM, private = True) :
        "opens a connection to one of the predefined buses; type is a DBUS.BUS_xxx value."
        return \
            celf(dbus.Connection.bus_get(type, private = private), private = private)
    #end bus_get

    def close(self) :
        "closes the connection if it is private to us. Shared connections belong to" \
        " libdbus and are left alone."
        if self.private :
            self.connection.close()
        #end if
    #end close

    def send(self, call, timeout) :
        "sends the MethodCall and blocks for up to timeout seconds for the reply," \
        " returning it as a Response."
        try :
            for arg in call.args :
                arg.validate()
            #end for
            message = dbus.Message.new_method_call \
              (
                destination = call.destination,
                path = call.path,
                iface = call.interface,
                method = call.method
              )
            appenditer = message.iter_init_append()
            for arg in call.args :
                arg.append_to(appenditer)
            #end for
        except (TypeError, ValueError, dbus.CallFailed) as err :
            raise MalformedCall \
              (
                "cannot construct %s::%s call on %s: %s" % (call.interface, call.method, call.path, err)
              ) \
                from err
        #end try
        reply = self.connection.send_with_reply_and_block(message, timeout)
        if reply == None :
            raise dbus.DBusError(DBUS.ERROR_TIMEOUT, "server took too long to return reply")
        #end if
        return \
            Response.from_message(reply)
    #end send

    def get_property(self, destination, path, interface, name, timeout) :
        "fetches the value of the named property of the given interface on the object" \
        " at path, blocking for up to timeout seconds. Returns the value as a Variant."
        message = dbus.Message.new_method_call \
          (
            destination = destination,
            path = path,
            iface = DBUS.INTERFACE_PROPERTIES,
            method = "Get"
          )
        message.append_objects("ss", interface, name)
        reply = self.connection.send_with_reply_and_block(message, timeout)
        if reply == None :
            raise dbus.DBusError(DBUS.ERROR_TIMEOUT, "server took too long to return property value")
        #end if
        response = Response.from_message(reply)
        if response.signature != "v" :
            raise dbus.DBusError \
              (
                DBUS.ERROR_INVALID_SIGNATURE,
                "expected property value of type “v”, got “%s”" % response.signature
              )
        #end if
        return \
            response.args[0].value
    #end get_property

#end BusConnection

#+
# The main class
#-

class DBusApi :
    "calls methods and gets properties on objects of one D-Bus service. connection is" \
    " a BusConnection or anything else with the same send and get_property methods;" \
    " config is a Config. A retry_policy may be given to override the one from the" \
    " config, and sleep is the function used to wait between retries."

    __slots__ = ("connection", "base", "method_timeout", "retry_policy", "_sleep") # to forestall typos

    def __init__(self, connection, config, retry_policy = None, sleep = time.sleep) :
        if not isinstance(config, Config) :
            raise TypeError("config must be a Config")
        #end if
        if retry_policy == None :
            retry_policy = config.retry_policy
        elif not isinstance(retry_policy, RetryPolicy) :
            raise TypeError("retry_policy must be a RetryPolicy")
        #end if
        self.connection = connection
        self.base = config.base
        self.method_timeout = config.method_timeout
        self.retry_policy = retry_policy
        self._sleep = sleep
    #end __init__

    @classmethod
    def open(celf, config, bus = DBUS.BUS_SYSTEM, **kwargs) :
        "creates a DBusApi on a new private connection to the specified bus."
        return \
            celf(BusConnection.bus_get(bus, private = True), config, **kwargs)
    #end open

    def close(self) :
        self.connection.close()
    #end close

    def call(self, path, interface, method, args = ()) :
        "calls the method with the given sequence of Variant args, retrying on transient" \
        " failures, and returns the Response. Raises MethodCallError on failure."
        try :
            result = self._call_retry(path, interface, method, args)
        except (RetriesExhausted, FatalTransportError, MalformedCall) as err :
            failure = MethodCallError(interface, method, path)
            _logger.error("%s: %s", failure.message, err.message)
            raise failure from err
        #end try
        return \
            result
    #end call

    def _call_retry(self, path, interface, method, args) :
        policy = self.retry_policy
        # every attempt resends this same call
        call = MethodCall(self.base, path, interface, method, args)
        retries = 0
        while True :
            try :
                result = self.connection.send(call, self.method_timeout)
                break
            except dbus.DBusError as err :
                failure = policy.classify(err)
                if not isinstance(failure, TransientTransportError) :
                    raise failure from err
                #end if
            #end try
            retries += 1
            if retries == policy.max_retries :
                raise RetriesExhausted(retries) from failure
            #end if
            _logger.debug("Retrying %s::%s method call: retry #%d", interface, method, retries)
            self._sleep(policy.delay)
        #end while
        return \
            result
    #end _call_retry

    def property(self, path, interface, name, target) :
        "returns the value of the named property, converted to the type given by" \
        " target, a TARGET value. Raises PropertyError on failure. Property fetches" \
        " are not retried."
        if not isinstance(target, TARGET) :
            raise TypeError("target must be a TARGET")
        #end if
        try :
            _validate("object path", dbus.validate_path, path)
            _validate("interface name", dbus.validate_interface, interface)
            _validate("property name", dbus.validate_member, name)
        except MalformedCall as err :
            raise PropertyError(interface, name, path, err.message) from err
        #end try
        try :
            value = self.connection.get_property(self.base, path, interface, name, self.method_timeout)
        except dbus.DBusError as err :
            failure = PropertyError \
              (
                interface,
                name,
                path,
                (lambda : "no details", lambda : err.message)[bool(err.message)]()
              )
            _logger.debug("%s", failure.message)
            raise failure from err
        #end try
        _logger.debug \
          (
            "Got D-Bus variant for %s::%s: %s (type: %s)", interface, name, repr(value), target.name
          )
        result = variant_to(value, target)
        if result == None :
            _logger.error("Failed to convert variant %s to %s", repr(value), target.name)
            raise PropertyError(interface, name, path, "wrong property type") \
                from ConversionMismatch("cannot convert %s to %s" % (repr(value), target.name))
        #end if
        return \
            result
    #end property

#end DBusApi
