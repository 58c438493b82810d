"""Tests for the ONNX model store."""

import logging

import pytest

from tseg.core.errors import InvalidArgumentError, ModelExistsError, ResultNotFoundError
from tseg.services.model_store import ModelStore, is_supported_model


@pytest.fixture
def store(tmp_path):
    return ModelStore(tmp_path / "models")


def _model(path, content=b"onnx"):
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(content)
    return path


class TestAddModel:
    """Test copying models into the store."""

    def test_add_copies_file(self, store, tmp_path):
        """Test the model is copied under its own name."""
        source = _model(tmp_path / "incoming" / "Tumor.onnx")
        target = store.add(source)
        assert target == store.models_dir / "Tumor.onnx"
        assert target.read_bytes() == b"onnx"
        assert source.exists()

    def test_duplicate_name_rejected(self, store, tmp_path):
        """Test an existing model is never overwritten."""
        _model(store.models_dir / "tumor.onnx", b"old")
        with pytest.raises(ModelExistsError, match="rename"):
            store.add(_model(tmp_path / "tumor.onnx", b"new"))
        assert (store.models_dir / "tumor.onnx").read_bytes() == b"old"

    def test_unsupported_format(self, store, tmp_path):
        """Test only ONNX files are accepted."""
        with pytest.raises(InvalidArgumentError):
            store.add(_model(tmp_path / "weights.pt"))

    def test_missing_source(self, store, tmp_path):
        """Test a missing source file is reported."""
        with pytest.raises(ResultNotFoundError):
            store.add(tmp_path / "ghost.onnx")

    def test_adding_stored_model_is_noop(self, store, caplog):
        """Test adding a model already in the store only warns."""
        stored = _model(store.models_dir / "tumor.onnx")
        with caplog.at_level(logging.WARNING, logger="tseg"):
            assert store.add(stored) == stored
        assert "already in destination" in caplog.text

    def test_suffix_check_is_case_insensitive(self, tmp_path):
        """Test upper-case extensions count as ONNX."""
        assert is_supported_model(tmp_path / "A.ONNX")
        assert not is_supported_model(tmp_path / "a.onnx.bak")


class TestResolveModel:
    """Test model selection."""

    def test_list_sorted(self, store):
        """Test models are listed by name."""
        for name in ("b.onnx", "a.onnx"):
            _model(store.models_dir / name)
        assert [p.name for p in store.list_models()] == ["a.onnx", "b.onnx"]

    def test_list_missing_dir(self, store):
        """Test an absent models dir lists nothing."""
        assert store.list_models() == []

    def test_explicit_name(self, store):
        """Test an explicit name wins."""
        _model(store.models_dir / "a.onnx")
        chosen = _model(store.models_dir / "b.onnx")
        assert store.resolve("b.onnx") == chosen

    def test_explicit_missing(self, store):
        """Test a missing explicit model is an error."""
        _model(store.models_dir / "a.onnx")
        with pytest.raises(ResultNotFoundError):
            store.resolve("z.onnx")

    def test_default_model(self, store):
        """Test the preferred default is used when no name is given."""
        _model(store.models_dir / "a.onnx")
        preferred = _model(store.models_dir / "b.onnx")
        store.default_model = "b.onnx"
        assert store.resolve() == preferred

    def test_missing_default_falls_back(self, store, caplog):
        """Test a vanished default falls back to the first model."""
        first = _model(store.models_dir / "a.onnx")
        store.default_model = "gone.onnx"
        with caplog.at_level(logging.WARNING, logger="tseg"):
            assert store.resolve() == first
        assert "falling back" in caplog.text

    def test_no_models(self, store):
        """Test an empty store cannot resolve a model."""
        with pytest.raises(ResultNotFoundError, match="No models"):
            store.resolve()

    def test_non_onnx_name_rejected(self, store):
        """Test explicit names must be ONNX files."""
        with pytest.raises(InvalidArgumentError):
            store.resolve("weights.pt")
