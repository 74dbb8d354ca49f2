import pytest

from modvault.errors import ProxyError
from modvault.paths import (
    AllPathParams,
    decode_path,
    get_all_params,
    get_module,
    get_version,
    matches_pattern,
)


@pytest.mark.parametrize(
    "pattern, name, want",
    [
        ("example.com/*", "example.com/athens", True),
        ("example.com/*", "example.com/athens/pkg", True),
        ("*.example.com/*", "go.example.com/athens/pkg", True),
        ("*.example.com/mod", "go.example.com/mod/example", True),
        ("*.example.com/mod", "go.example.com/pkg/example", False),
        ("*.example.com/mod/pkg", "go.example.com/pkg", False),
        ("[]a]", "go.example.com/pkg", False),
    ],
)
def test_matches_pattern(pattern, name, want):
    assert matches_pattern(pattern, name) is want


@pytest.mark.parametrize("depth", [1, 2, 3, 4])
def test_matches_pattern_deep_targets(depth):
    target = "git.example.com" + "/path" * depth + "/pkg"
    assert matches_pattern("*.example.com/*", target)


def test_star_does_not_cross_slash():
    assert not matches_pattern("example.*", "example.com/athens")
    assert matches_pattern("example.*", "example.com")


def test_character_classes():
    assert matches_pattern("[a-c]x.com", "bx.com/repo")
    assert not matches_pattern("[^a-c]x.com", "bx.com/repo")
    assert not matches_pattern("[a", "a")


def test_decode_path_plain_and_bang():
    assert decode_path("github.com/gomods/athens") == "github.com/gomods/athens"
    assert decode_path("github.com/!azure/!go") == "github.com/Azure/Go"


@pytest.mark.parametrize("bad", ["github.com/Azure", "trailing!", "a!1", "caf\u00e9"])
def test_decode_path_rejects_invalid(bad):
    with pytest.raises(ProxyError) as exc:
        decode_path(bad)
    assert "invalid module path encoding" in str(exc.value)


def test_get_all_params():
    params = {"module": "github.com/!burnt!sushi/toml", "version": "v0.3.1"}
    assert get_all_params(params) == AllPathParams(
        module="github.com/BurntSushi/toml", version="v0.3.1"
    )


def test_missing_params():
    with pytest.raises(ProxyError, match="missing module parameter"):
        get_module({})
    with pytest.raises(ProxyError, match="missing version parameter"):
        get_version({"module": "m"})
    with pytest.raises(ProxyError, match="missing version parameter"):
        get_all_params({"module": "m"})