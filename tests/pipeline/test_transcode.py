"""Tests for external command handling.

The Python interpreter stands in for ffmpeg so these run without media tools.
"""

import subprocess
import sys
import threading
import time
from pathlib import Path
from types import SimpleNamespace

import pytest

from compressor.pipeline import transcode
from compressor.pipeline.transcode import (
    FFmpegTranscoder,
    TranscodeCancelled,
    TranscodeError,
    build_command,
    run_command,
    thumbnail_path_for,
)

COPY_TEMPLATE = '-c "import shutil, sys; shutil.copyfile(sys.argv[1], sys.argv[2])" {{input}} {{output}}'


class TestBuildCommand:
    def test_placeholders_substituted(self):
        args = build_command("ffmpeg", "-y -i {{input}} -c:v libx265 {{output}}", Path("/in/a.mp4"), Path("/out/a.mp4"))

        assert args == ["ffmpeg", "-y", "-i", "/in/a.mp4", "-c:v", "libx265", "/out/a.mp4"]

    def test_paths_with_spaces_and_quotes_stay_single_args(self):
        source = Path("/in/my holiday's clip.mp4")
        target = Path("/out/my clip.mp4")

        args = build_command("ffmpeg", "-i {{input}} {{output}}", source, target)

        assert args == ["ffmpeg", "-i", str(source), str(target)]

    def test_unbalanced_template_raises(self):
        with pytest.raises(TranscodeError, match="parse ffmpeg args"):
            build_command("ffmpeg", '-i {{input}} -vf "scale {{output}}', Path("/a"), Path("/b"))


class TestRunCommand:
    def test_success(self):
        run_command([sys.executable, "-c", "pass"], threading.Event(), "probe")

    def test_failure_includes_exit_status_and_stderr(self):
        script = "import sys; sys.stderr.write('first\\nsecond\\n'); sys.exit(3)"

        with pytest.raises(TranscodeError) as excinfo:
            run_command([sys.executable, "-c", script], threading.Event(), "ffmpeg")

        message = str(excinfo.value)
        assert message.startswith("ffmpeg failed: exit status 3")
        assert "first" in message
        assert "second" in message
        assert not isinstance(excinfo.value, TranscodeCancelled)

    def test_stderr_tail_is_bounded(self):
        script = "import sys\nfor i in range(100): sys.stderr.write('line %d\\n' % i)\nsys.exit(1)"

        with pytest.raises(TranscodeError) as excinfo:
            run_command([sys.executable, "-c", script], threading.Event(), "ffmpeg")

        message = str(excinfo.value)
        assert "line 99" in message
        assert "line 0\n" not in message
        assert len(message.splitlines()) == 1 + transcode.STDERR_TAIL_LINES

    def test_missing_binary(self, tmp_path):
        with pytest.raises(TranscodeError, match="failed to start"):
            run_command([str(tmp_path / "no-such-ffmpeg")], threading.Event(), "ffmpeg")

    def test_cancel_terminates_process(self):
        cancel = threading.Event()
        timer = threading.Timer(0.3, cancel.set)
        timer.start()
        started = time.monotonic()

        try:
            with pytest.raises(TranscodeCancelled):
                run_command([sys.executable, "-c", "import time; time.sleep(30)"], cancel, "ffmpeg")
        finally:
            timer.cancel()

        assert time.monotonic() - started < 10


class TestFFmpegTranscoder:
    def test_probe_binary_name(self):
        assert FFmpegTranscoder("/usr/bin/ffmpeg", "").probe_binary == "/usr/bin/ffprobe"

    def test_transcode_writes_output(self, tmp_path):
        source = tmp_path / "in dir" / "a b.mp4"
        source.parent.mkdir()
        source.write_bytes(b"video-bytes")
        target = tmp_path / "out" / "nested" / "a b.mp4"

        FFmpegTranscoder(sys.executable, COPY_TEMPLATE).transcode(source, target, threading.Event())

        assert target.read_bytes() == b"video-bytes"

    def test_transcode_failure(self, tmp_path):
        source = tmp_path / "a.mp4"
        source.write_bytes(b"x")
        template = '-c "import sys; sys.stderr.write(\'bad codec\\n\'); sys.exit(1)" {{input}} {{output}}'

        with pytest.raises(TranscodeError, match="bad codec"):
            FFmpegTranscoder(sys.executable, template).transcode(source, tmp_path / "out.mp4", threading.Event())

    def test_probe_duration_parses_json(self, monkeypatch):
        calls = []

        def fake_run(args, **kwargs):
            calls.append(args)
            return SimpleNamespace(stdout='{"format": {"duration": "42.5"}}')

        monkeypatch.setattr(transcode.subprocess, "run", fake_run)

        assert FFmpegTranscoder("ffmpeg", "").probe_duration(Path("/out/a.mp4")) == 42.5
        assert calls[0][0] == "ffprobe"
        assert calls[0][-1] == "/out/a.mp4"

    def test_probe_duration_failure(self, monkeypatch):
        def fake_run(args, **kwargs):
            raise subprocess.CalledProcessError(1, args)

        monkeypatch.setattr(transcode.subprocess, "run", fake_run)

        with pytest.raises(TranscodeError, match="ffprobe failed"):
            FFmpegTranscoder("ffmpeg", "").probe_duration(Path("/out/a.mp4"))

    def test_probe_duration_bad_output(self, monkeypatch):
        monkeypatch.setattr(transcode.subprocess, "run", lambda args, **kwargs: SimpleNamespace(stdout="{}"))

        with pytest.raises(TranscodeError, match="parse ffprobe output"):
            FFmpegTranscoder("ffmpeg", "").probe_duration(Path("/out/a.mp4"))

    @pytest.mark.parametrize("duration,seek", [(100.0, "10.000"), (5.0, "1.000"), (None, "1.000")])
    def test_thumbnail_seek_position(self, monkeypatch, tmp_path, duration, seek):
        """Seek to 10% of the duration, never earlier than one second."""
        transcoder = FFmpegTranscoder("ffmpeg", "")
        captured = []

        def fake_probe(path):
            if duration is None:
                raise TranscodeError("ffprobe failed: missing")
            return duration

        monkeypatch.setattr(transcoder, "probe_duration", fake_probe)
        monkeypatch.setattr(transcode, "run_command", lambda args, cancel_flag, label: captured.append((args, label)))

        thumb = tmp_path / "thumbs" / "a.jpg"
        transcoder.generate_thumbnail(Path("/out/a.mp4"), thumb, threading.Event())

        args, label = captured[0]
        assert label == "thumbnail"
        assert args[args.index("-ss") + 1] == seek
        assert args[args.index("-vframes") + 1] == "1"
        assert args[-1] == str(thumb)
        assert thumb.parent.is_dir()


class TestThumbnailPath:
    def test_unique_paths_in_temp_dir(self):
        first = thumbnail_path_for(Path("/in/a.mp4"))
        second = thumbnail_path_for(Path("/in/a.mp4"))

        assert first != second
        assert first.suffix == ".jpg"
        assert "a" in first.name
