"""Test the Fetch-Transcode Unit"""

import subprocess
from unittest.mock import patch

import pytest

from spot_fetcher.core.exceptions import FetchTranscodeFailure
from spot_fetcher.download.transcoder import FetchTranscodeUnit, FfmpegTranscoder
from spot_fetcher.youtube.models import SourceReference

from tests.conftest import FakeProcess, FakeSource, FakeTranscoder


SOURCE = SourceReference(url="https://www.youtube.com/watch?v=vidA", video_id="vidA")


def make_unit(temp_dir, source=None, transcoder=None, **kwargs):
    return FetchTranscodeUnit(
        temp_dir / "downloads",
        source=source or FakeSource(),
        transcoder=transcoder or FakeTranscoder(),
        **kwargs
    )


class TestOutputPaths:
    """Test naming and collision handling"""

    def test_path_from_sanitized_key(self, temp_dir):
        unit = make_unit(temp_dir)
        assert unit.output_path_for("AC/DC - Back: In Black?") == (
            temp_dir / "downloads" / "AC-DC - Back- In Black-.mp3"
        )

    def test_same_key_same_path(self, temp_dir):
        unit = make_unit(temp_dir)
        assert unit.output_path_for("A - 1") == unit.output_path_for("A - 1")

    def test_collision_gets_suffix(self, temp_dir):
        unit = make_unit(temp_dir)
        first = unit.output_path_for("AC/DC - X")
        second = unit.output_path_for("AC:DC - X")
        third = unit.output_path_for("AC|DC - X")

        assert first.name == "AC-DC - X.mp3"
        assert second.name == "AC-DC - X (2).mp3"
        assert third.name == "AC-DC - X (3).mp3"

    def test_claims_follow_ledger_order(self, temp_dir):
        unit = make_unit(temp_dir, claimed_keys=["AC:DC - X", "AC/DC - X"])

        assert unit.output_path_for("AC/DC - X").name == "AC-DC - X (2).mp3"
        assert unit.output_path_for("AC:DC - X").name == "AC-DC - X.mp3"

    def test_existing_path(self, temp_dir):
        unit = make_unit(temp_dir)
        assert unit.existing_path("A - 1") is None

        unit.ensure_output_directory()
        (temp_dir / "downloads" / "A - 1.mp3").write_bytes(b"x")
        assert unit.existing_path("A - 1") == temp_dir / "downloads" / "A - 1.mp3"

    def test_directory_created_lazily(self, temp_dir):
        unit = make_unit(temp_dir)
        unit.output_path_for("A - 1")
        assert not (temp_dir / "downloads").exists()

        unit.ensure_output_directory()
        unit.ensure_output_directory()
        assert (temp_dir / "downloads").is_dir()


class TestFetchAndTranscode:
    """Test the two-stage pipeline"""

    def test_success(self, temp_dir):
        source = FakeSource(chunks=[b"abc", b"def"])
        transcoder = FakeTranscoder()
        unit = make_unit(temp_dir, source, transcoder)

        path = unit.fetch_and_transcode(SOURCE, "Artist1 - Song A")

        assert path == temp_dir / "downloads" / "Artist1 - Song A.mp3"
        assert path.read_bytes() == b"ID3abcdef"
        assert source.opened == [SOURCE.url]
        assert len(transcoder.spawned) == 1
        partial = transcoder.spawned[0]
        assert partial.parent == temp_dir / "downloads"
        assert partial.name.startswith("Artist1 - Song A.mp3.")
        assert partial.name.endswith(".part")
        assert [p.name for p in (temp_dir / "downloads").iterdir()] == ["Artist1 - Song A.mp3"]

    def test_source_open_failure(self, temp_dir):
        error = FetchTranscodeFailure("HTTP 403", stage="source")
        transcoder = FakeTranscoder()
        unit = make_unit(temp_dir, FakeSource(error=error), transcoder)

        with pytest.raises(FetchTranscodeFailure) as exc_info:
            unit.fetch_and_transcode(SOURCE, "Artist1 - Song A")

        assert exc_info.value.stage == "source"
        assert transcoder.spawned == []

    def test_source_fails_mid_stream(self, temp_dir):
        source = FakeSource(
            chunks=[b"abc", b"def", b"ghi"],
            error=ConnectionError("connection reset"),
            fail_after=1,
        )
        unit = make_unit(temp_dir, source)

        with pytest.raises(FetchTranscodeFailure) as exc_info:
            unit.fetch_and_transcode(SOURCE, "Artist1 - Song A")

        # ffmpeg exited cleanly on the truncated input, the source error still wins
        assert exc_info.value.stage == "source"
        assert isinstance(exc_info.value.cause, ConnectionError)
        assert list((temp_dir / "downloads").iterdir()) == []

    def test_transcode_failure(self, temp_dir):
        transcoder = FakeTranscoder(returncode=1, stderr=b"pipe:0: Invalid data found")
        unit = make_unit(temp_dir, transcoder=transcoder)

        with pytest.raises(FetchTranscodeFailure) as exc_info:
            unit.fetch_and_transcode(SOURCE, "Artist1 - Song A")

        assert exc_info.value.stage == "transcode"
        assert "Invalid data found" in exc_info.value.message
        assert list((temp_dir / "downloads").iterdir()) == []

    def test_ffmpeg_missing(self, temp_dir):
        class MissingTranscoder:
            def spawn(self, output_path):
                raise FileNotFoundError("ffmpeg")

        unit = make_unit(temp_dir, transcoder=MissingTranscoder())

        with pytest.raises(FetchTranscodeFailure) as exc_info:
            unit.fetch_and_transcode(SOURCE, "Artist1 - Song A")
        assert exc_info.value.stage == "transcode"
        assert list((temp_dir / "downloads").iterdir()) == []

    @patch("spot_fetcher.download.transcoder.calculate_backoff", return_value=0)
    def test_retry_then_success(self, mock_backoff, temp_dir):
        class FlakySource(FakeSource):
            def open(self, url):
                self.opened.append(url)
                if len(self.opened) == 1:
                    raise FetchTranscodeFailure("HTTP 403", stage="source")
                return iter([b"ok"])

        source = FlakySource()
        unit = make_unit(temp_dir, source, retries=1)

        path = unit.fetch_and_transcode(SOURCE, "Artist1 - Song A")

        assert path.read_bytes() == b"ID3ok"
        assert len(source.opened) == 2

    def test_no_retry_by_default(self, temp_dir):
        source = FakeSource(error=FetchTranscodeFailure("HTTP 403", stage="source"))
        unit = make_unit(temp_dir, source)

        with pytest.raises(FetchTranscodeFailure):
            unit.fetch_and_transcode(SOURCE, "Artist1 - Song A")
        assert len(source.opened) == 1

    def test_concurrent_fetches_of_same_track(self, temp_dir):
        key = "Artist1 - Song A"
        results = {}
        second = make_unit(temp_dir, FakeSource(chunks=[b"second"]), OpenAtSpawnTranscoder())

        def run_second():
            results["second"] = second.fetch_and_transcode(SOURCE, key)

        first_transcoder = OpenAtSpawnTranscoder(before_exit=run_second)
        first = make_unit(temp_dir, FakeSource(chunks=[b"first"]), first_transcoder)

        results["first"] = first.fetch_and_transcode(SOURCE, key)

        final = temp_dir / "downloads" / "Artist1 - Song A.mp3"
        assert results == {"first": final, "second": final}
        assert final.read_bytes() == b"ID3first"
        assert second._transcoder.spawned[0] != first_transcoder.spawned[0]
        assert [p.name for p in (temp_dir / "downloads").iterdir()] == ["Artist1 - Song A.mp3"]


class OpenAtSpawnProcess(FakeProcess):
    """Opens its output when spawned, like ffmpeg, and writes it on exit"""

    def __init__(self, output_path, before_exit=None):
        super().__init__(output_path)
        self._file = open(output_path, "wb")
        self._before_exit = before_exit

    def wait(self):
        self.stdin.closed.wait(5)
        if self.returncode is None:
            if self._before_exit is not None:
                before_exit, self._before_exit = self._before_exit, None
                before_exit()
            self._file.write(b"ID3" + bytes(self.stdin.buffer))
            self._file.close()
            self.returncode = 0
        return self.returncode

    def kill(self):
        self._file.close()
        super().kill()


class OpenAtSpawnTranscoder:
    def __init__(self, before_exit=None):
        self.before_exit = before_exit
        self.spawned = []

    def spawn(self, output_path):
        self.spawned.append(output_path)
        return OpenAtSpawnProcess(output_path, self.before_exit)


class TestFfmpegTranscoder:
    """Test the ffmpeg command line"""

    @patch("spot_fetcher.download.transcoder.subprocess.Popen")
    def test_spawn(self, mock_popen, temp_dir):
        output = temp_dir / "Artist1 - Song A.mp3.x.part"

        process = FfmpegTranscoder().spawn(output)

        assert process is mock_popen.return_value
        args = mock_popen.call_args.args[0]
        assert args[0] == "ffmpeg"
        for expected in ("pipe:0", "libmp3lame", "320k", "-vn", str(output), "-y"):
            assert expected in args
        kwargs = mock_popen.call_args.kwargs
        assert kwargs["stdin"] == subprocess.PIPE
        assert kwargs["stderr"] == subprocess.PIPE
        # Ctrl+C in the terminal must not reach ffmpeg
        assert kwargs["start_new_session"] is True
