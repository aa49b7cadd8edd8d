"""Tests for ICY metadata decoding."""

import asyncio

import httpx
import pytest

from radio_atlas.domain.radio.icy import (
    DecodeStatus,
    IcyMetadataDecoder,
    decode_metadata_block,
    parse_meta_interval,
    parse_stream_title,
    read_icy_title,
)


class TestParseStreamTitle:
    """Tests for StreamTitle extraction."""

    def test_quoted_title(self) -> None:
        """Quoted form returns the trimmed value."""
        assert parse_stream_title("StreamTitle=' A - B ';StreamUrl='';") == "A - B"

    def test_apostrophe_inside_title(self) -> None:
        """A terminated quoted value may contain apostrophes."""
        assert parse_stream_title("StreamTitle='Don't Stop - Band';") == "Don't Stop - Band"

    def test_unquoted_title(self) -> None:
        """Unquoted StreamTitle=X; decodes to X."""
        assert parse_stream_title("StreamTitle=X;") == "X"

    def test_missing_key(self) -> None:
        """A block without StreamTitle yields None."""
        assert parse_stream_title("StreamUrl='http://example.com';") is None

    def test_empty_value(self) -> None:
        """An empty title is treated as no title."""
        assert parse_stream_title("StreamTitle='';") is None


class TestDecodeMetadataBlock:
    """Tests for the pure decode step."""

    def test_complete_block(self, icy_stream) -> None:
        """A complete block decodes to a frame with its title."""
        step = decode_metadata_block(icy_stream(16, "StreamTitle='A - B';"), 16)

        assert step.status is DecodeStatus.FRAME
        assert step.title == "A - B"
        assert step.frame.text == "StreamTitle='A - B';"
        assert len(step.frame.raw_bytes) % 16 == 0

    def test_need_more_before_length_byte(self) -> None:
        """Fewer than meta_interval + 1 bytes needs more data."""
        step = decode_metadata_block(b"\x00" * 16, 16)

        assert step.status is DecodeStatus.NEED_MORE
        assert not step.done

    def test_need_more_partial_block(self, icy_stream) -> None:
        """A truncated block needs more data."""
        data = icy_stream(16, "StreamTitle='A - B';")
        step = decode_metadata_block(data[:-5], 16)

        assert step.status is DecodeStatus.NEED_MORE

    def test_empty_block(self) -> None:
        """A zero length byte is a definitive empty result."""
        step = decode_metadata_block(b"\x00" * 16 + b"\x00" + b"more audio", 16)

        assert step.status is DecodeStatus.EMPTY
        assert step.title is None

    def test_overflow(self) -> None:
        """Exceeding the byte cap without a complete block gives up."""
        data = b"\x00" * 16 + bytes([255]) + b"x" * 40
        step = decode_metadata_block(data, 16, max_bytes=48)

        assert step.status is DecodeStatus.OVERFLOW
        assert step.title is None

    def test_rejects_non_positive_interval(self) -> None:
        """meta_interval must be positive."""
        with pytest.raises(ValueError):
            decode_metadata_block(b"abc", 0)


class TestIcyMetadataDecoder:
    """Tests for the incremental decoder."""

    def test_byte_by_byte(self, icy_stream) -> None:
        """Feeding one byte at a time still yields the frame."""
        decoder = IcyMetadataDecoder(32)
        step = None
        for byte in icy_stream(32, "StreamTitle='Artist - Song';"):
            step = decoder.feed(bytes([byte]))
            if step.done:
                break

        assert step.status is DecodeStatus.FRAME
        assert step.title == "Artist - Song"

    def test_result_is_sticky(self, icy_stream) -> None:
        """After a terminal step further chunks are ignored."""
        decoder = IcyMetadataDecoder(16)
        first = decoder.feed(icy_stream(16, "StreamTitle='One';"))
        buffered = decoder.buffered
        second = decoder.feed(icy_stream(16, "StreamTitle='Two';"))

        assert second is first
        assert decoder.buffered == buffered

    def test_overflow_past_cap(self) -> None:
        """Buffer overflow past meta_interval + max_extra yields no title."""
        decoder = IcyMetadataDecoder(16, max_extra=32)
        decoder.feed(b"\x00" * 16 + bytes([255]))
        step = decoder.feed(b"y" * 40)

        assert step.status is DecodeStatus.OVERFLOW
        assert step.title is None


class TestParseMetaInterval:
    """Tests for icy-metaint header parsing."""

    def test_valid(self) -> None:
        assert parse_meta_interval("16000") == 16000

    def test_duplicated_header(self) -> None:
        """Joined duplicate headers use the first value."""
        assert parse_meta_interval("8192, 8192") == 8192

    def test_invalid(self) -> None:
        assert parse_meta_interval(None) is None
        assert parse_meta_interval("abc") is None
        assert parse_meta_interval("0") is None


class TestReadIcyTitle:
    """Tests for reading a title from a live stream."""

    @pytest.mark.anyio
    async def test_reads_title(self, mock_client, icy_stream) -> None:
        """Requests metadata and decodes the first block."""
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["icy"] = request.headers.get("icy-metadata")
            return httpx.Response(
                200,
                headers={"icy-metaint": "64"},
                content=icy_stream(64, "StreamTitle='A - B';") + b"\x11" * 64,
            )

        async with mock_client(handler) as client:
            logs: list[str] = []
            title = await read_icy_title("http://s.example/live", client=client, logs=logs)

        assert title == "A - B"
        assert seen["icy"] == "1"
        assert "Status: 200" in logs

    @pytest.mark.anyio
    async def test_missing_metaint(self, mock_client) -> None:
        """Streams without icy-metaint yield None."""

        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, content=b"\x11" * 128)

        async with mock_client(handler) as client:
            logs: list[str] = []
            title = await read_icy_title("http://s.example/live", client=client, logs=logs)

        assert title is None
        assert "MetaInt: None" in logs

    @pytest.mark.anyio
    async def test_network_error(self, mock_client) -> None:
        """Connection failures yield None instead of raising."""

        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        async with mock_client(handler) as client:
            title = await read_icy_title("http://s.example/live", client=client)

        assert title is None

    @pytest.mark.anyio
    async def test_timeout(self, mock_client) -> None:
        """A stream that never delivers a block times out to None."""

        async def slow_body():
            yield b"\x11" * 8
            await asyncio.sleep(5)
            yield b"\x11" * 8

        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, headers={"icy-metaint": "16000"}, content=slow_body())

        async with mock_client(handler) as client:
            logs: list[str] = []
            title = await read_icy_title(
                "http://s.example/live", client=client, timeout=0.1, logs=logs
            )

        assert title is None
        assert any(line.startswith("Timed out") for line in logs)


def title_of_block_length(length: int) -> str:
    """A title whose ``StreamTitle='...';`` text fills exactly ``length`` bytes."""
    return "x" * (length - len("StreamTitle='';"))


class TestBlockSizes:
    """Any positive interval with blocks from 16 up to 4080 bytes."""

    @pytest.mark.parametrize("meta_interval", [1, 8192, 16000])
    @pytest.mark.parametrize("block_length", [16, 4080])
    @pytest.mark.parametrize("chunk_size", [1000, 4096])
    def test_decodes_fed_in_chunks(
        self, icy_stream, meta_interval: int, block_length: int, chunk_size: int
    ) -> None:
        title = title_of_block_length(block_length)
        data = icy_stream(meta_interval, f"StreamTitle='{title}';") + b"\x11" * 64
        assert data[meta_interval] == block_length // 16

        decoder = IcyMetadataDecoder(meta_interval)
        step = None
        for start in range(0, len(data), chunk_size):
            step = decoder.feed(data[start : start + chunk_size])
            if step.done:
                break

        assert step.status is DecodeStatus.FRAME
        assert step.title == title
        assert len(step.frame.raw_bytes) == block_length

    @pytest.mark.anyio
    @pytest.mark.parametrize("meta_interval", [1, 16000])
    async def test_largest_block_over_network(
        self, mock_client, icy_stream, meta_interval: int
    ) -> None:
        title = title_of_block_length(4080)

        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(
                200,
                headers={"icy-metaint": str(meta_interval)},
                content=icy_stream(meta_interval, f"StreamTitle='{title}';"),
            )

        async with mock_client(handler) as client:
            assert await read_icy_title("http://s.example/live", client=client) == title
