from __future__ import annotations

import arestream


def test_version() -> None:
    """Test that the package exposes a version string."""
    assert isinstance(arestream.__version__, str)


def test_exports() -> None:
    """Test that every exported name is defined."""
    for name in arestream.__all__:
        assert hasattr(arestream, name)
