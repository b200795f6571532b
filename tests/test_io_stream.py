import numpy as np
import pytest

from repcoach import io_stream
from repcoach.io_stream import StreamFrame, advancing, video_frames, webcam_frames


def _frames(timestamps):
    image = np.zeros((4, 4, 3), dtype=np.uint8)
    return [StreamFrame(image, i, ts) for i, ts in enumerate(timestamps)]


class TestAdvancing:

    def test_drops_repeated_and_backwards_timestamps(self):
        kept = list(advancing(_frames([0.0, 33.0, 33.0, 20.0, 66.0])))
        assert [f.index for f in kept] == [0, 1, 4]

    def test_unpacks_like_a_tuple(self):
        image, idx, ts = next(advancing(_frames([5.0])))
        assert (idx, ts) == (0, 5.0)


class TestVideoFrames:

    def test_missing_file_raises_on_first_read(self, tmp_path):
        frames = video_frames(str(tmp_path / "missing.mp4"))
        with pytest.raises(FileNotFoundError):
            next(frames)

    def test_capture_opened_lazily(self, monkeypatch):
        opened = []
        monkeypatch.setattr(io_stream.cv2, "VideoCapture", lambda source: opened.append(source))
        video_frames("clip.mp4")
        webcam_frames(0)
        assert opened == []
