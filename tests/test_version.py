import pytest

from twbuild.version import VersionError, base_version, derive_version, parse_version


@pytest.mark.parametrize(
    ("current", "mode", "auto_increment", "expected"),
    [
        ("1.2.5+3", "develop", True, "1.2.5-develop+4"),
        ("1.2.5", "master", False, "1.2.5"),
        ("2.0.0+9", None, True, "2.0.0+10"),
        ("1.2.5", None, True, "1.2.5+1"),
        ("1.2.5-develop+371", "testing", True, "1.2.5-testing+372"),
        ("1.2.5-develop+371", None, False, "1.2.5"),
        ("0.1.0+7", "master", True, "0.1.0+8"),
    ],
)
def test_derive_version(current: str, mode: str | None, auto_increment: bool, expected: str) -> None:
    assert derive_version(current, mode, auto_increment) == expected


def test_master_is_the_same_as_no_mode() -> None:
    for current in ("1.0.0", "1.0.0+4", "3.2.1-beta+12"):
        for auto in (True, False):
            assert derive_version(current, "master", auto) == derive_version(current, None, auto)


def test_empty_mode_adds_no_label() -> None:
    assert derive_version("1.0.0+1", "", True) == "1.0.0+2"


def test_non_numeric_build_counts_as_zero() -> None:
    assert derive_version("1.2.5+abc", None, True) == "1.2.5+1"
    assert parse_version("1.2.5+12.sha.5114f85").build_counter == 12
    assert parse_version("1.2.5+7beta").build_counter == 7


def test_derive_version_is_pure() -> None:
    current = "4.5.6+10"
    first = derive_version(current, "develop", True)
    second = derive_version(current, "develop", True)
    assert first == second == "4.5.6-develop+11"
    assert current == "4.5.6+10"


def test_major_minor_patch_never_change() -> None:
    v = parse_version(derive_version("9.8.7+99", "x", True))
    assert (v.major, v.minor, v.patch) == (9, 8, 7)


def test_base_version_drops_build_metadata() -> None:
    assert base_version("1.2.5+3", "develop") == "1.2.5-develop"
    assert base_version("1.2.5+3", "master") == "1.2.5"


@pytest.mark.parametrize("bad", ["", "1.2", "one.two.three", "1.2.3.4"])
def test_invalid_versions_are_rejected(bad: str) -> None:
    with pytest.raises(VersionError):
        derive_version(bad, None, True)
