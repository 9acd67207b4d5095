"""
Shared fixtures: a scripted stand-in for BusConnection, so that retry and
property behaviour can be exercised without a bus, and a sleep function
that records delays instead of waiting.
"""

import pytest
from dbusapi import \
    Config, \
    DBusApi

BASE = "org.example.Service"
PATH = "/org/example/Object"
IFACE = "org.example.Interface"

class FakeConnection :
    "replays a script of outcomes. Each outcome is returned, or raised if it is" \
    " an exception."

    def __init__(self, outcomes = (), properties = None) :
        self.outcomes = list(outcomes)
        self.properties = dict(properties or {})
        self.calls = []
        self.property_requests = []
        self.closed = False
    #end __init__

    def send(self, call, timeout) :
        self.calls.append((call, timeout))
        outcome = self.outcomes.pop(0)
        if isinstance(outcome, BaseException) :
            raise outcome
        #end if
        return \
            outcome
    #end send

    def get_property(self, destination, path, interface, name, timeout) :
        self.property_requests.append((destination, path, interface, name, timeout))
        outcome = self.properties[(interface, name)]
        if isinstance(outcome, BaseException) :
            raise outcome
        #end if
        return \
            outcome
    #end get_property

    def close(self) :
        self.closed = True
    #end close

#end FakeConnection

@pytest.fixture
def config() :
    return \
        Config(base = BASE, method_retry_error_names = ("Busy",))
#end config

@pytest.fixture
def sleeps() :
    return \
        []
#end sleeps

@pytest.fixture
def make_api(config, sleeps) :

    def make(connection, **kwargs) :
        return \
            DBusApi(connection, config, sleep = sleeps.append, **kwargs)
    #end make

    return \
        make
#end make_api
