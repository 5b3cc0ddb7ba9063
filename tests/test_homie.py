import pytest

from homie_automation.homie import (
    DeviceRef,
    HomieDomain,
    PropertyRef,
    SubjectError,
    as_device_ref,
    as_property_ref,
    get_default_homie_domain,
    set_default_homie_domain,
)


@pytest.fixture
def custom_default_domain():
    previous = get_default_homie_domain()
    set_default_homie_domain(HomieDomain.parse("house"))
    yield
    set_default_homie_domain(previous)


def test_property_subject_uses_default_domain():
    ref = PropertyRef.from_subject("dev/node/prop")
    assert ref.homie_domain.is_default
    assert (ref.device_id, ref.node_id, ref.prop_id) == ("dev", "node", "prop")


def test_property_subject_round_trip():
    ref = PropertyRef.from_subject("other/dev-1/node/prop")
    assert ref.homie_domain == HomieDomain("other")
    assert PropertyRef.from_subject(ref.to_subject()) == ref


def test_property_topic():
    ref = PropertyRef.from_subject("dev/node/prop")
    assert ref.to_topic() == "homie/5/dev/node/prop"


def test_property_device_ref():
    ref = PropertyRef.from_subject("other/dev/node/prop")
    assert ref.device_ref() == DeviceRef(HomieDomain("other"), "dev")


def test_device_subject_round_trip():
    ref = DeviceRef.from_subject("dev")
    assert ref.homie_domain.is_default
    assert DeviceRef.from_subject(ref.to_subject()) == ref


@pytest.mark.parametrize("subject", ["a/b", "", "Dev/node/prop", "a/b/c/d/e", "d//p"])
def test_invalid_property_subjects(subject):
    with pytest.raises(SubjectError):
        PropertyRef.from_subject(subject)


@pytest.mark.parametrize("subject", ["a/b/c", "", "UPPER"])
def test_invalid_device_subjects(subject):
    with pytest.raises(SubjectError):
        DeviceRef.from_subject(subject)


@pytest.mark.parametrize("name", ["", "a/b", "a+", "#"])
def test_invalid_domain(name):
    with pytest.raises(SubjectError):
        HomieDomain.parse(name)


def test_default_domain_is_changeable(custom_default_domain):
    ref = DeviceRef.from_subject("dev")
    assert ref.homie_domain == HomieDomain("house")
    assert get_default_homie_domain() == HomieDomain("house")


def test_as_property_ref_accepts_ref_and_string():
    ref = PropertyRef.from_subject("dev/node/prop")
    assert as_property_ref(ref) is ref
    assert as_property_ref("dev/node/prop") == ref


def test_as_device_ref_accepts_ref_and_string():
    ref = DeviceRef.from_subject("dev")
    assert as_device_ref(ref) is ref
    assert as_device_ref("dev") == ref


def test_conversion_rejects_other_types():
    with pytest.raises(TypeError):
        as_property_ref(42)
    with pytest.raises(TypeError):
        as_device_ref(PropertyRef.from_subject("dev/node/prop"))


def test_str_is_subject():
    ref = PropertyRef.from_subject("dev/node/prop")
    assert str(ref) == ref.to_subject()