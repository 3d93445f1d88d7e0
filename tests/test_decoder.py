"""
Tests for livecanvas.decoder.

Covers:
  - Records split across transport segments
  - Several records in one segment
  - Malformed records dropped and counted, decoding continues
  - Trailing record without a separator decoded on flush
  - NDJSONAdapter async iteration
"""

import json
import logging

from livecanvas.decoder import ChunkDecoder, GenerationChunk, NDJSONAdapter

from .conftest import cut, ndjson


class TestChunkDecoder:
    def test_record_split_across_segments(self):
        decoder = ChunkDecoder()
        first, second = '{"response": "<h', 'tml>", "done": false}\n'

        assert decoder.feed(first) == []
        assert decoder.residual == first
        assert decoder.feed(second) == [GenerationChunk("<html>")]
        assert decoder.residual == ""

    def test_several_records_in_one_segment(self):
        decoder = ChunkDecoder()
        chunks = decoder.feed(ndjson("a", "b", "c"))
        assert [chunk.text for chunk in chunks] == ["a", "b", "c", ""]
        assert chunks[-1].done is True
        assert decoder.decoded == 4

    def test_any_segmentation_yields_same_text(self):
        body = ndjson("<!DOCTYPE html>", "<html><body>", "ünïcode ✓", "</body></html>")
        for size in (1, 2, 5, 13, len(body)):
            decoder = ChunkDecoder()
            text = "".join(
                chunk.text for segment in cut(body, size) for chunk in decoder.feed(segment)
            )
            assert text == "<!DOCTYPE html><html><body>ünïcode ✓</body></html>"

    def test_bad_record_dropped_and_decoding_continues(self, caplog):
        decoder = ChunkDecoder()
        body = '{"response": "a"}\nnot json at all\n{"response": "b"}\n'
        with caplog.at_level(logging.WARNING, logger="livecanvas.decoder"):
            chunks = decoder.feed(body)

        assert [chunk.text for chunk in chunks] == ["a", "b"]
        assert decoder.dropped == 1
        assert "Bad JSON chunk dropped" in caplog.text

    def test_non_object_record_dropped(self):
        decoder = ChunkDecoder()
        assert decoder.feed("[1, 2, 3]\n") == []
        assert decoder.dropped == 1

    def test_missing_or_non_string_response_is_empty(self):
        decoder = ChunkDecoder()
        chunks = decoder.feed('{"done": false}\n{"response": 42}\n')
        assert [chunk.text for chunk in chunks] == ["", ""]

    def test_blank_lines_are_not_records(self):
        decoder = ChunkDecoder()
        assert decoder.feed("\n\n  \n") == []
        assert decoder.dropped == 0
        assert decoder.decoded == 0

    def test_flush_decodes_unterminated_last_record(self):
        decoder = ChunkDecoder()
        decoder.feed(json.dumps({"response": "tail", "done": True}))
        assert decoder.flush() == [GenerationChunk("tail", done=True)]
        assert decoder.flush() == []

    def test_flush_of_truncated_record_counts_as_dropped(self):
        decoder = ChunkDecoder()
        decoder.feed('{"response": "trunc')
        assert decoder.flush() == []
        assert decoder.dropped == 1

    def test_repr(self):
        assert "dropped=0" in repr(ChunkDecoder())


class TestNDJSONAdapter:
    async def test_iterates_decoded_chunks(self):
        async def source():
            for segment in cut(ndjson("<p>", "hi", "</p>", done=False), 7):
                yield segment

        adapter = NDJSONAdapter(source())
        texts = [chunk.text async for chunk in adapter]
        assert texts == ["<p>", "hi", "</p>"]

    async def test_flushes_record_without_trailing_newline(self):
        async def source():
            yield '{"response": "a"}\n{"response": "b"}'

        adapter = NDJSONAdapter(source())
        assert [chunk.text async for chunk in adapter] == ["a", "b"]
        assert adapter.decoder.decoded == 2

    def test_repr_mentions_decoder(self):
        adapter = NDJSONAdapter(source=[], decoder=ChunkDecoder())
        assert "ChunkDecoder" in repr(adapter)
