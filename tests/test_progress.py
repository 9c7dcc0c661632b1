"""Tests for progress sinks."""

import pytest

from graphex_kg.types.graph import GenerationProgress, GenerationStage


def _update(percent):
    return GenerationProgress(stage=GenerationStage.GENERATING, percent_complete=percent)


class TestProgressChannel:
    """Tests for ProgressChannel."""

    @pytest.mark.asyncio
    async def test_iterates_until_closed(self):
        from graphex_kg.pipeline import ProgressChannel

        channel = ProgressChannel()
        channel.publish(_update(10))
        channel.publish(_update(20))
        channel.close()

        assert [u.percent_complete async for u in channel] == [10, 20]
        assert channel.closed is True
        assert [u async for u in channel] == []

    @pytest.mark.asyncio
    async def test_full_channel_drops_oldest(self):
        from graphex_kg.pipeline import ProgressChannel

        channel = ProgressChannel(maxsize=2)
        for percent in (10, 20, 30):
            channel.publish(_update(percent))
        channel.close()

        assert [u.percent_complete async for u in channel] == [30]
        assert channel.dropped == 2

    @pytest.mark.asyncio
    async def test_publish_after_close_is_ignored(self):
        from graphex_kg.pipeline import ProgressChannel

        channel = ProgressChannel()
        channel.close()
        channel.publish(_update(50))
        channel.close()
        assert [u async for u in channel] == []

    def test_invalid_size(self):
        from graphex_kg.pipeline import ProgressChannel

        with pytest.raises(ValueError):
            ProgressChannel(maxsize=0)

    def test_from_config(self):
        from graphex_kg.config import KGConfig
        from graphex_kg.pipeline import ProgressChannel

        channel = ProgressChannel.from_config(KGConfig(progress_buffer=8))
        assert channel._queue.maxsize == 8


class TestCallbackProgressSink:
    """Tests for CallbackProgressSink."""

    def test_forwards_updates(self):
        from graphex_kg.pipeline import CallbackProgressSink

        seen = []
        CallbackProgressSink(seen.append).publish(_update(40))
        assert [u.percent_complete for u in seen] == [40]

    def test_swallows_callback_errors(self):
        from graphex_kg.pipeline import CallbackProgressSink

        def broken(_):
            raise RuntimeError("terminal closed")

        CallbackProgressSink(broken).publish(_update(40))
