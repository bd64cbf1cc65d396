"""Tests for savdi_sdk.__init__ lazy imports and exports."""

import savdi_sdk


def test_lazy_import_scripted_transport():
    cls = savdi_sdk.ScriptedTransport
    assert cls.__name__ == "ScriptedTransport"


def test_lazy_import_unknown_raises():
    import pytest

    with pytest.raises(AttributeError, match="has no attribute"):
        _ = savdi_sdk.NoSuchThing  # type: ignore[attr-defined]


def test_all_exports():
    for name in savdi_sdk.__all__:
        assert hasattr(savdi_sdk, name)
