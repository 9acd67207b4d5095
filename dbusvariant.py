"""
Typed D-Bus values, and conversion of them into the plain Python types
that callers actually want. A Variant keeps the D-Bus type signature of
everything it holds, so that the different shapes in which a service may
choose to send the same logical value can be told apart after the fact.
"""
#+
# Copyright 2026 the DBusAPI authors.
# Licensed under the GNU Lesser General Public License v2.1 or later.
#-

import enum
import logging
import dbussy as dbus
from dbussy import \
    DBUS

_logger = logging.getLogger(__name__)

UINT32_MAX = (1 << 32) - 1
INT64_MAX = (1 << 63) - 1

_string_types = {DBUS.TYPE_STRING, DBUS.TYPE_OBJECT_PATH, DBUS.TYPE_SIGNATURE}
_integer_types = \
    {
        DBUS.TYPE_BYTE,
        DBUS.TYPE_BOOLEAN,
        DBUS.TYPE_INT16,
        DBUS.TYPE_UINT16,
        DBUS.TYPE_INT32,
        DBUS.TYPE_UINT32,
        DBUS.TYPE_INT64,
        DBUS.TYPE_UINT64,
    }
_container_types = {DBUS.TYPE_ARRAY, DBUS.TYPE_STRUCT, DBUS.TYPE_DICT_ENTRY}

#+
# Errors
#-

class DBusAPIError(Exception) :
    "base class for all errors reported by dbusapi and dbusvariant."

    __slots__ = ("message",)

    def __init__(self, message) :
        self.args = (message,)
        self.message = message
    #end __init__

#end DBusAPIError

class ConversionMismatch(DBusAPIError) :
    "a value could not be converted to the requested type."
#end ConversionMismatch

#+
# Values
#-

class Variant :
    "a D-Bus value together with its type signature. Basic values hold the Python" \
    " scalar; arrays, structs and dict entries hold a list of Variant elements; a" \
    " value of variant type holds a single inner Variant.\n" \
    "\n" \
    "Construct directly if you already have the elements as Variants, use new() to" \
    " convert from plain Python values, or from_iter() to capture an argument of a" \
    " received dbussy.Message. Variants are read-only."

    __slots__ = ("_signature", "_value") # to forestall typos

    def __init__(self, signature, value) :
        if not isinstance(signature, str) or len(signature) == 0 :
            raise TypeError("signature must be a nonempty str")
        #end if
        self._signature = signature
        self._value = value
    #end __init__

    @property
    def signature(self) :
        "the complete D-Bus type signature of this value."
        return \
            self._signature
    #end signature

    @property
    def value(self) :
        "the payload: a scalar, a list of Variants, or the inner Variant."
        return \
            self._value
    #end value

    @property
    def type(self) :
        "the DBUS.TYPE_xxx code for this value."
        code = ord(self._signature[0])
        if code == DBUS.STRUCT_BEGIN_CHAR :
            result = DBUS.TYPE_STRUCT
        elif code == DBUS.DICT_ENTRY_BEGIN_CHAR :
            result = DBUS.TYPE_DICT_ENTRY
        else :
            result = code
        #end if
        return \
            result
    #end type

    @classmethod
    def new(celf, signature, value) :
        "converts the plain Python value according to signature, which must be a single" \
        " complete type. Integers are range-checked for their D-Bus type. Dicts are given" \
        " as Python dicts, structs as tuples or lists, and values of variant type either" \
        " as Variants or as (signature, value) pairs."

        def convert(valtype, val) :
            if isinstance(valtype, dbus.BasicType) :
                result = celf(valtype.signature, valtype.validate(val))
            elif isinstance(valtype, dbus.DictType) :
                if not isinstance(val, dict) :
                    raise TypeError("need a dict, not %s: %s" % (type(val).__name__, repr(val)))
                #end if
                result = celf \
                  (
                    valtype.signature,
                    list
                      (
                        celf
                          (
                            valtype.entry_signature,
                            [convert(valtype.keytype, key), convert(valtype.valuetype, val[key])]
                          )
                        for key in sorted(val)
                      )
                  )
            elif isinstance(valtype, dbus.ArrayType) :
                if not isinstance(val, (tuple, list, bytes, bytearray)) :
                    raise TypeError("need a sequence, not %s: %s" % (type(val).__name__, repr(val)))
                #end if
                result = celf(valtype.signature, list(convert(valtype.elttype, elt) for elt in val))
            elif isinstance(valtype, dbus.StructType) :
                if not isinstance(val, (tuple, list)) or len(val) != len(valtype.elttypes) :
                    raise TypeError \
                      (
                        "need a list or tuple of %d elements, not %s" % (len(valtype.elttypes), repr(val))
                      )
                #end if
                result = celf \
                  (
                    valtype.signature,
                    list(convert(elttype, elt) for elttype, elt in zip(valtype.elttypes, val))
                  )
            elif isinstance(valtype, dbus.VariantType) :
                if isinstance(val, Variant) :
                    inner = val
                elif isinstance(val, (tuple, list)) and len(val) == 2 :
                    inner = celf.new(*val)
                else :
                    raise TypeError("need a Variant or a (signature, value) pair, not %s" % repr(val))
                #end if
                result = celf(valtype.signature, inner)
            else :
                raise TypeError("unsupported type %s" % repr(valtype))
            #end if
            return \
                result
        #end convert

    #begin new
        return \
            convert(dbus.parse_single_signature(signature), value)
    #end new

    @classmethod
    def from_iter(celf, iter) :
        "captures the current argument of a dbussy.Message.ExtractIter, recursing into" \
        " containers, without losing any type information."
        argtype = iter.arg_type
        signature = iter.signature
        if argtype in DBUS.basic_to_ctypes :
            value = iter.basic
        elif argtype in _container_types :
            value = list \
              (
                celf.from_iter(elt)
                for elt in iter.recurse()
                if elt.arg_type != DBUS.TYPE_INVALID
                  # what you get on recursing into an empty array
              )
        elif argtype == DBUS.TYPE_VARIANT :
            value = celf.from_iter(next(iter.recurse()))
        else :
            raise TypeError("unrecognized argtype %d" % argtype)
        #end if
        return \
            celf(signature, value)
    #end from_iter

    def unwrap(self) :
        "returns the value as plain Python objects, in the form that" \
        " dbussy.Message.append_objects expects."
        argtype = self.type
        if argtype == DBUS.TYPE_VARIANT :
            result = (self._value.signature, self._value.unwrap())
        elif argtype == DBUS.TYPE_ARRAY and ord(self._signature[1]) == DBUS.DICT_ENTRY_BEGIN_CHAR :
            result = dict(tuple(entry.unwrap()) for entry in self._value)
        elif argtype in (DBUS.TYPE_ARRAY, DBUS.TYPE_DICT_ENTRY) :
            result = list(elt.unwrap() for elt in self._value)
        elif argtype == DBUS.TYPE_STRUCT :
            result = tuple(elt.unwrap() for elt in self._value)
        else :
            result = self._value
        #end if
        return \
            result
    #end unwrap

    def validate(self) :
        "checks that the payload agrees with the signature all the way down, raising" \
        " TypeError or ValueError if not. Returns self."

        def check_syntax(validator, what) :
            # libdbus checks these on append, and aborts rather than failing
            try :
                validator(what)
            except dbus.DBusError as err :
                raise ValueError("invalid %s: %s" % (repr(what), err.message)) from err
            #end try
        #end check_syntax

    #begin validate
        argtype = self.type
        if argtype != DBUS.TYPE_DICT_ENTRY :
            # dict entries are only checked as part of their enclosing array
            check_syntax(dbus.signature_validate_single, self._signature)
        #end if
        if argtype in DBUS.basic_to_ctypes :
            dbus.parse_single_signature(self._signature).validate(self._value)
            if argtype == DBUS.TYPE_OBJECT_PATH :
                check_syntax(dbus.validate_path, self._value)
            elif argtype == DBUS.TYPE_SIGNATURE :
                check_syntax(dbus.signature_validate, self._value)
            #end if
        else :
            if argtype == DBUS.TYPE_VARIANT :
                if not isinstance(self._value, Variant) :
                    raise TypeError("variant must hold a Variant, not %s" % repr(self._value))
                #end if
                elts = [self._value]
                want = None
            else :
                if (
                        not isinstance(self._value, (tuple, list))
                    or
                        not all(isinstance(elt, Variant) for elt in self._value)
                ) :
                    raise TypeError("%s must hold a list of Variants" % repr(self._signature))
                #end if
                elts = self._value
                if argtype == DBUS.TYPE_ARRAY :
                    want = [self._signature[1:]] * len(elts)
                else :
                    want = list(t.signature for t in dbus.parse_signature(self._signature[1:-1]))
                #end if
            #end if
            if want != None and [elt.signature for elt in elts] != want :
                raise ValueError \
                  (
                    "element types %s do not match signature %s"
                  %
                    (repr([elt.signature for elt in elts]), repr(self._signature))
                  )
            #end if
            for elt in elts :
                elt.validate()
            #end for
        #end if
        return \
            self
    #end validate

    def append_to(self, appenditer) :
        "appends the value to a dbussy.Message.AppendIter. Call validate() first;" \
        " libdbus does not take kindly to mismatched containers."
        argtype = self.type
        if argtype in DBUS.basic_to_ctypes :
            appenditer.append_basic(argtype, self._value)
        else :
            if argtype == DBUS.TYPE_ARRAY :
                subiter = appenditer.open_container(argtype, self._signature[1:])
                elts = self._value
            elif argtype == DBUS.TYPE_VARIANT :
                subiter = appenditer.open_container(argtype, self._value.signature)
                elts = [self._value]
            else :
                subiter = appenditer.open_container(argtype, None)
                elts = self._value
            #end if
            for elt in elts :
                elt.append_to(subiter)
            #end for
            subiter.close()
        #end if
    #end append_to

    # The following accessors look through variant wrappers, and answer
    # None if the value does not have the requested shape.

    def as_str(self) :
        "the string payload, if this is a string, object path or signature."
        argtype = self.type
        if argtype == DBUS.TYPE_VARIANT :
            result = self._value.as_str()
        elif argtype in _string_types :
            result = str(self._value)
        else :
            result = None
        #end if
        return \
            result
    #end as_str

    def as_int(self) :
        "the payload as a signed 64-bit integer, if this is of an integer or boolean" \
        " type and the number fits."
        argtype = self.type
        if argtype == DBUS.TYPE_VARIANT :
            result = self._value.as_int()
        elif argtype in _integer_types :
            result = int(self._value)
            if result > INT64_MAX :
                result = None
            #end if
        else :
            result = None
        #end if
        return \
            result
    #end as_int

    def as_iter(self) :
        "the contained elements as a list, if this is a container. The inner value of" \
        " a variant counts as a single-element sequence, and a dict yields its keys" \
        " and values alternately."
        argtype = self.type
        if argtype == DBUS.TYPE_VARIANT :
            result = [self._value]
        elif argtype == DBUS.TYPE_ARRAY and ord(self._signature[1]) == DBUS.DICT_ENTRY_BEGIN_CHAR :
            result = list(item for entry in self._value for item in entry.value)
        elif argtype in _container_types :
            result = list(self._value)
        else :
            result = None
        #end if
        return \
            result
    #end as_iter

    def __eq__(self, other) :
        if isinstance(other, Variant) :
            result = self._signature == other._signature and self._value == other._value
        else :
            result = NotImplemented
        #end if
        return \
            result
    #end __eq__

    def __repr__(self) :
        return \
            "%s(%s, %s)" % (type(self).__name__, repr(self._signature), repr(self._value))
    #end __repr__

#end Variant

#+
# Conversion
#-

class TARGET(enum.Enum) :
    "the Python types that values can be converted to. The value of each member" \
    " is the D-Bus signature that strict extraction with get() insists on."

    STRING = "s" # str
    INT64 = "x" # int
    BOOLEAN = "b" # bool
    STRING_LIST = "as" # list of str
    BYTES = "ay" # bytes
    UINT32 = "u" # int
#end TARGET

def _uint32_in_range(number) :
    if number != None and 0 <= number <= UINT32_MAX :
        result = number
    else :
        result = None
    #end if
    return \
        result
#end _uint32_in_range

def _to_string(value) :
    return \
        value.as_str()
#end _to_string

def _to_int64(value) :
    return \
        value.as_int()
#end _to_int64

def _to_boolean(value) :
    # zero converts to True, anything else to False
    number = value.as_int()
    if number != None :
        result = number == 0
    else :
        result = None
    #end if
    return \
        result
#end _to_boolean

def _to_string_list(value) :
    elements = value.as_iter()
    if elements != None :
        result = []
        for element in elements :
            item = element.as_str()
            if item == None :
                _logger.debug("non-string element %s in %s", repr(element), repr(value))
                result = None
                break
            #end if
            result.append(item)
        #end for
    else :
        result = None
    #end if
    return \
        result
#end _to_string_list

def _to_bytes(value) :
    elements = value.as_iter()
    if elements != None :
        result = bytearray()
        for element in elements :
            number = element.as_int()
            if number == None :
                _logger.debug("non-numeric element %s in %s", repr(element), repr(value))
                result = None
                break
            #end if
            result.append(number & 0xff)
        #end for
        if result != None :
            result = bytes(result)
        #end if
    else :
        result = None
    #end if
    return \
        result
#end _to_bytes

def _to_uint32(value) :
    # The same number may arrive bare, or as the first element of a
    # sequence (including a variant wrapping it). Type-tagged extraction
    # is tried first, then generic integer extraction; either way the
    # result must lie within the u32 range, it is never truncated.
    elements = value.as_iter()
    if elements != None :
        if len(elements) != 0 :
            first = elements[0]
            if first.type == DBUS.TYPE_UINT32 :
                number = first.value
            else :
                _logger.debug("first element %s is not u32, trying generic integer", repr(first))
                number = first.as_int()
            #end if
        else :
            number = None
        #end if
    elif value.type in (DBUS.TYPE_UINT32, DBUS.TYPE_BYTE) :
        number = value.value
    else :
        number = value.as_int()
    #end if
    return \
        _uint32_in_range(number)
#end _to_uint32

_converters = \
    {
        TARGET.STRING : _to_string,
        TARGET.INT64 : _to_int64,
        TARGET.BOOLEAN : _to_boolean,
        TARGET.STRING_LIST : _to_string_list,
        TARGET.BYTES : _to_bytes,
        TARGET.UINT32 : _to_uint32,
    }

def variant_to(value, target) :
    "converts the Variant value to the Python type for target, a TARGET value, applying" \
    " the coercions that services are known to need. Returns None if the conversion" \
    " is not possible; this is not an error as far as this routine is concerned."
    if not isinstance(value, Variant) :
        raise TypeError("value must be a Variant")
    #end if
    if not isinstance(target, TARGET) :
        raise TypeError("target must be a TARGET")
    #end if
    result = _converters[target](value)
    if result == None :
        _logger.debug("cannot convert %s to %s", repr(value), target.name)
    #end if
    return \
        result
#end variant_to

def get(value, target) :
    "strict extraction: returns the payload of the Variant value as the Python type" \
    " for target only if its signature is exactly the one for that TARGET, else None." \
    " target may also be a signature string, in which case the unwrapped value is" \
    " returned on a match."
    if not isinstance(value, Variant) :
        raise TypeError("value must be a Variant")
    #end if
    if isinstance(target, TARGET) :
        signature = target.value
    elif isinstance(target, str) :
        signature = target
    else :
        raise TypeError("target must be a TARGET or a signature string")
    #end if
    if value.signature == signature :
        if target == TARGET.BYTES :
            result = bytes(value.unwrap())
        elif target == TARGET.STRING :
            result = str(value.value)
        else :
            result = value.unwrap()
        #end if
    else :
        result = None
    #end if
    return \
        result
#end get

def extract_variant(value, target) :
    "strict extraction of the inner value of a Variant of variant type. Raises" \
    " ConversionMismatch if it is not of the type given by target."
    if not isinstance(value, Variant) :
        raise TypeError("value must be a Variant")
    #end if
    if value.type == DBUS.TYPE_VARIANT :
        result = get(value.value, target)
    else :
        result = None
    #end if
    if result == None :
        raise ConversionMismatch("Variant type does not match: %s" % repr(value))
    #end if
    return \
        result
#end extract_variant

def variant_to_bytes(value) :
    "returns the bytes held by a Variant of variant type wrapping an array of bytes." \
    " Raises ConversionMismatch for any other shape."
    if not isinstance(value, Variant) :
        raise TypeError("value must be a Variant")
    #end if
    if value.type == DBUS.TYPE_VARIANT and value.value.signature == TARGET.BYTES.value :
        result = bytes(value.value.unwrap())
    else :
        raise ConversionMismatch("Variant not an array: %s" % repr(value))
    #end if
    return \
        result
#end variant_to_bytes
