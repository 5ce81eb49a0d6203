import pytest

from ghostclip import builder


class FakeStream:
    def __init__(self, chunks):
        self.chunks = chunks

    def raise_for_status(self):
        pass

    def iter_content(self, chunk_size=8192):
        return iter(self.chunks)


def test_unknown_model(tmp_path):
    with pytest.raises(ValueError, match="Unknown model"):
        builder.download_model("nope", str(tmp_path))


def test_truncated_download_rejected(monkeypatch, tmp_path):
    urls = []
    monkeypatch.setattr(builder.requests, "get",
                        lambda url, stream=False, timeout=None: urls.append(url) or FakeStream([b"x" * 10]))
    with pytest.raises(ValueError, match="File too small"):
        builder.download_model("u2net", str(tmp_path))
    assert urls == [builder.MODEL_URLS["u2net"]]
    assert (tmp_path / "u2net.onnx").exists()
    assert not (tmp_path / "u2net.onnx.part").exists()


def test_existing_file_not_downloaded(monkeypatch, tmp_path):
    (tmp_path / "u2net.onnx").write_bytes(b"x")
    monkeypatch.setattr(builder, "MIN_SIZE_MB", {"u2net": 0})

    def fail(*a, **k):
        raise AssertionError("should not download")

    monkeypatch.setattr(builder.requests, "get", fail)
    assert builder.download_model("u2net", str(tmp_path)) == str(tmp_path / "u2net.onnx")


def test_main_returns_error_code(tmp_path):
    assert builder.main(["nope"]) == 1
