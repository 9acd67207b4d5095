import pytest
from dbussy import \
    DBUS
from dbusvariant import \
    TARGET, \
    UINT32_MAX, \
    Variant, \
    variant_to

#+
# Variant itself
#-

def test_new_builds_typed_elements() :
    value = Variant.new("a{sv}", {"b" : ("u", 1), "a" : ("s", "x")})
    assert value == Variant \
      (
        "a{sv}",
        [
            Variant("{sv}", [Variant("s", "a"), Variant("v", Variant("s", "x"))]),
            Variant("{sv}", [Variant("s", "b"), Variant("v", Variant("u", 1))]),
        ]
      )
    assert value.unwrap() == {"a" : ("s", "x"), "b" : ("u", 1)}
#end test_new_builds_typed_elements

def test_new_struct_and_nested_variant() :
    value = Variant.new("(sv)", ("name", Variant("i", -3)))
    assert value.type == DBUS.TYPE_STRUCT
    assert value.value[1] == Variant("v", Variant("i", -3))
    assert value.unwrap() == ("name", ("i", -3))
#end test_new_struct_and_nested_variant

def test_new_range_checks_integers() :
    with pytest.raises(ValueError) :
        Variant.new("u", UINT32_MAX + 1)
    #end with
    with pytest.raises(ValueError) :
        Variant.new("y", -1)
    #end with
    with pytest.raises(TypeError) :
        Variant.new("s", 5)
    #end with
#end test_new_range_checks_integers

def test_type_codes() :
    assert Variant("u", 1).type == DBUS.TYPE_UINT32
    assert Variant("as", []).type == DBUS.TYPE_ARRAY
    assert Variant("{su}", []).type == DBUS.TYPE_DICT_ENTRY
    assert Variant("(uu)", []).type == DBUS.TYPE_STRUCT
#end test_type_codes

def test_variants_are_read_only() :
    value = Variant("u", 1)
    with pytest.raises(AttributeError) :
        value.value = 2
    #end with
    with pytest.raises(AttributeError) :
        value.extra = 2
    #end with
#end test_variants_are_read_only

def test_validate() :
    value = Variant.new("a{sv}", {"Path" : ("o", "/a"), "Tags" : ("as", ["x"])})
    assert value.validate() is value
    assert Variant("{sv}", [Variant("s", "k"), Variant("v", Variant("u", 1))]).validate()
    for bad in \
        (
            Variant("au", [Variant("u", 1), Variant("i", 1)]),
            Variant("(ss)", [Variant("s", "a")]),
            Variant("uu", 1),
            Variant("g", "a{"),
        ) \
    :
        with pytest.raises(ValueError) :
            bad.validate()
        #end with
    #end for
    with pytest.raises(TypeError) :
        Variant("as", ["not a Variant"]).validate()
    #end with
#end test_validate

def test_accessors_see_through_variant_wrappers() :
    wrapped = Variant("v", Variant("v", Variant("s", "deep")))
    assert wrapped.as_str() == "deep"
    assert Variant("v", Variant("q", 9)).as_int() == 9
    assert Variant("v", Variant("q", 9)).as_iter() == [Variant("q", 9)]
    assert Variant("q", 9).as_iter() == None
    assert Variant("q", 9).as_str() == None
    assert Variant("s", "9").as_int() == None
#end test_accessors_see_through_variant_wrappers

def test_dicts_iterate_as_keys_and_values() :
    value = Variant.new("a{ss}", {"b" : "2", "a" : "1"})
    assert value.as_iter() == [Variant("s", "a"), Variant("s", "1"), Variant("s", "b"), Variant("s", "2")]
    assert variant_to(value, TARGET.STRING_LIST) == ["a", "1", "b", "2"]
    assert variant_to(Variant.new("a{yy}", {1 : 2, 3 : 4}), TARGET.BYTES) == b"\x01\x02\x03\x04"
    assert variant_to(Variant.new("a{su}", {"a" : 1}), TARGET.STRING_LIST) == None
    assert variant_to(Variant("a{ss}", []), TARGET.STRING_LIST) == []
    # a single dict entry is a struct-like container, not a dict
    assert Variant("{ss}", [Variant("s", "k"), Variant("s", "v")]).as_iter() == [Variant("s", "k"), Variant("s", "v")]
#end test_dicts_iterate_as_keys_and_values

#+
# u32 conversion
#-

@pytest.mark.parametrize("n", [0, 1, 42, 1 << 31, UINT32_MAX])
def test_uint32_from_either_shape(n) :
    assert variant_to(Variant("u", n), TARGET.UINT32) == n
    assert variant_to(Variant("x", n), TARGET.UINT32) == n
    assert variant_to(Variant("v", Variant("u", n)), TARGET.UINT32) == n
    assert variant_to(Variant("au", [Variant("u", n)]), TARGET.UINT32) == n
    assert variant_to(Variant("at", [Variant("t", n)]), TARGET.UINT32) == n
#end test_uint32_from_either_shape

@pytest.mark.parametrize("n", [-1, -(1 << 40), UINT32_MAX + 1, 1 << 62])
def test_uint32_out_of_range_from_either_shape(n) :
    assert variant_to(Variant("x", n), TARGET.UINT32) == None
    assert variant_to(Variant("v", Variant("x", n)), TARGET.UINT32) == None
    assert variant_to(Variant("ax", [Variant("x", n)]), TARGET.UINT32) == None
#end test_uint32_out_of_range_from_either_shape

def test_uint32_only_looks_at_first_element() :
    value = Variant("ax", [Variant("x", 5), Variant("x", -1)])
    assert variant_to(value, TARGET.UINT32) == 5
#end test_uint32_only_looks_at_first_element

def test_uint32_from_byte() :
    assert variant_to(Variant("y", 42), TARGET.UINT32) == 42
    assert variant_to(Variant("v", Variant("y", 42)), TARGET.UINT32) == 42
#end test_uint32_from_byte

def test_uint32_without_a_number() :
    assert variant_to(Variant("au", []), TARGET.UINT32) == None
    assert variant_to(Variant("s", "42"), TARGET.UINT32) == None
    assert variant_to(Variant("as", [Variant("s", "42")]), TARGET.UINT32) == None
    assert variant_to(Variant("t", 1 << 63), TARGET.UINT32) == None
    assert variant_to(Variant("d", 42.0), TARGET.UINT32) == None
#end test_uint32_without_a_number

#+
# The other targets
#-

def test_string() :
    assert variant_to(Variant("s", "abc"), TARGET.STRING) == "abc"
    assert variant_to(Variant("o", DBUS.ObjectPath("/a/b")), TARGET.STRING) == "/a/b"
    assert variant_to(Variant("g", "a{sv}"), TARGET.STRING) == "a{sv}"
    assert variant_to(Variant("v", Variant("s", "abc")), TARGET.STRING) == "abc"
    assert variant_to(Variant("u", 5), TARGET.STRING) == None
    assert variant_to(Variant("as", [Variant("s", "abc")]), TARGET.STRING) == None
#end test_string

def test_int64() :
    assert variant_to(Variant("i", -5), TARGET.INT64) == -5
    assert variant_to(Variant("x", -(1 << 63)), TARGET.INT64) == -(1 << 63)
    assert variant_to(Variant("t", (1 << 63) - 1), TARGET.INT64) == (1 << 63) - 1
    assert variant_to(Variant("t", 1 << 63), TARGET.INT64) == None
    assert variant_to(Variant("b", True), TARGET.INT64) == 1
    assert variant_to(Variant("d", 1.5), TARGET.INT64) == None
    assert variant_to(Variant("s", "5"), TARGET.INT64) == None
#end test_int64

def test_boolean_zero_is_true() :
    assert variant_to(Variant("u", 0), TARGET.BOOLEAN) is True
    assert variant_to(Variant("u", 1), TARGET.BOOLEAN) is False
    assert variant_to(Variant("i", -7), TARGET.BOOLEAN) is False
    assert variant_to(Variant("b", False), TARGET.BOOLEAN) is True
    assert variant_to(Variant("b", True), TARGET.BOOLEAN) is False
    assert variant_to(Variant("s", "0"), TARGET.BOOLEAN) == None
#end test_boolean_zero_is_true

def test_string_list() :
    value = Variant.new("as", ["eth0", "wlan0"])
    assert variant_to(value, TARGET.STRING_LIST) == ["eth0", "wlan0"]
    assert variant_to(Variant("as", []), TARGET.STRING_LIST) == []
    assert variant_to(Variant.new("ao", ["/a", "/b"]), TARGET.STRING_LIST) == ["/a", "/b"]
#end test_string_list

def test_string_list_is_all_or_nothing() :
    value = Variant.new("av", [("s", "a"), ("u", 2), ("s", "c")])
    assert variant_to(value, TARGET.STRING_LIST) == None
    assert variant_to(Variant("s", "a"), TARGET.STRING_LIST) == None
#end test_string_list_is_all_or_nothing

def test_bytes() :
    assert variant_to(Variant.new("ay", b"\x01\x02\xff"), TARGET.BYTES) == b"\x01\x02\xff"
    assert variant_to(Variant.new("ai", [256, -1, 65]), TARGET.BYTES) == b"\x00\xffA"
    assert variant_to(Variant("ay", []), TARGET.BYTES) == b""
#end test_bytes

def test_bytes_is_all_or_nothing() :
    value = Variant.new("av", [("y", 1), ("s", "2")])
    assert variant_to(value, TARGET.BYTES) == None
    assert variant_to(Variant("y", 1), TARGET.BYTES) == None
#end test_bytes_is_all_or_nothing

def test_target_must_be_a_TARGET() :
    with pytest.raises(TypeError) :
        variant_to(Variant("s", "x"), str)
    #end with
    with pytest.raises(TypeError) :
        variant_to("x", TARGET.STRING)
    #end with
#end test_target_must_be_a_TARGET
