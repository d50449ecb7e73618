"""Tests for sequential timeline generation with frame chaining."""

import pytest

from framechain.chain import CancellationToken
from framechain.errors import ConflictError, InvalidRequestError
from framechain.models import GenerationMode, SegmentStatus, TimelineStatus
from framechain.orchestrator import RunRegistry

USER_ID = "user-1"
SOURCE_IMAGE = "https://cdn.test/uploads/source.jpg"


class TestGenerateTimeline:
    async def test_chains_last_frames(self, services, make_timeline, generation_provider):
        """Segment k is generated from the last frame of segment k-1."""
        timeline = await make_timeline(n=3)

        run = await services.orchestrator.generate_timeline(timeline.id, USER_ID)

        assert run.segments_generated == 3
        assert not run.stopped_early
        segments = await services.segments.get_by_timeline(timeline.id)
        assert all(s.status == SegmentStatus.GENERATED for s in segments)

        payloads = [c["payload"] for c in generation_provider.calls]
        assert payloads[0]["image_url"] == SOURCE_IMAGE
        assert payloads[1]["image_url"] == segments[0].last_frame_url
        assert payloads[2]["image_url"] == segments[1].last_frame_url
        assert segments[2].chained_from_url == segments[1].last_frame_url
        assert segments[0].chained_from_url is None

        assert run.results[1].frame_chained
        assert run.results[1].previous_frame_used == segments[0].last_frame_url
        assert (await services.timelines.get_by_id(timeline.id)).status == TimelineStatus.READY

    async def test_stops_at_first_failure(self, services, make_timeline, generation_provider):
        generation_provider.fail_on = {1}
        timeline = await make_timeline(n=3)

        run = await services.orchestrator.generate_timeline(timeline.id, USER_ID)

        assert len(generation_provider.calls) == 2
        assert [r.success for r in run.results] == [True, False]
        assert run.stopped_early
        assert run.segments_generated == 1

        first, second, third = await services.segments.get_by_timeline(timeline.id)
        assert first.status == SegmentStatus.GENERATED
        assert second.status == SegmentStatus.ERROR
        assert "502" in second.error_message
        assert third.status == SegmentStatus.PENDING
        assert (await services.timelines.get_by_id(timeline.id)).status == TimelineStatus.READY

    async def test_first_segment_failure_generates_nothing_else(
        self, services, make_timeline, generation_provider
    ):
        generation_provider.fail_on = {0}
        timeline = await make_timeline(n=3)

        run = await services.orchestrator.generate_timeline(timeline.id, USER_ID)

        assert len(generation_provider.calls) == 1
        assert run.segments_generated == 0
        assert run.stopped_early

    async def test_last_segment_failure_is_not_stopped_early(
        self, services, make_timeline, generation_provider
    ):
        generation_provider.fail_on = {1}
        timeline = await make_timeline(n=2)

        run = await services.orchestrator.generate_timeline(timeline.id, USER_ID)

        assert not run.stopped_early
        assert run.to_dict()["segmentsGenerated"] == 1

    async def test_empty_timeline_is_rejected(self, services):
        timeline = await services.timelines.create(USER_ID)

        with pytest.raises(InvalidRequestError, match="No segments"):
            await services.orchestrator.generate_timeline(timeline.id, USER_ID)

    async def test_first_segment_mode_override(self, services, make_timeline, generation_provider):
        timeline = await make_timeline(n=2)

        run = await services.orchestrator.generate_timeline(
            timeline.id, USER_ID, first_segment_mode="text-to-video"
        )

        assert run.segments_generated == 2
        assert generation_provider.calls[0]["mode"] == GenerationMode.TEXT_TO_VIDEO
        assert "image_url" not in generation_provider.calls[0]["payload"]
        assert generation_provider.calls[1]["mode"] == GenerationMode.IMAGE_TO_VIDEO
        assert run.to_dict()["frameChaining"] == {
            "enabled": True,
            "firstSegmentMode": "text-to-video",
            "subsequentMode": "image-to-video",
        }

    async def test_first_segment_source_override(self, services, make_timeline, generation_provider):
        timeline = await make_timeline(n=1)

        await services.orchestrator.generate_timeline(
            timeline.id, USER_ID, first_segment_source="https://cdn.test/uploads/other.jpg"
        )

        assert generation_provider.calls[0]["payload"]["image_url"] == "https://cdn.test/uploads/other.jpg"

    async def test_illegal_first_mode_rejected(self, services, make_timeline, generation_provider):
        timeline = await make_timeline(n=1)

        with pytest.raises(InvalidRequestError):
            await services.orchestrator.generate_timeline(
                timeline.id, USER_ID, first_segment_mode="audio-to-video"
            )
        assert generation_provider.calls == []

    async def test_missing_first_source_fails_the_run(self, services, make_timeline, generation_provider):
        """Input errors on a segment become a failed result, not an exception."""
        timeline = await make_timeline(n=2, source_url=None)

        run = await services.orchestrator.generate_timeline(timeline.id, USER_ID)

        assert generation_provider.calls == []
        assert len(run.results) == 1
        assert not run.results[0].success
        assert "source image" in run.results[0].error


class TestCancellation:
    async def test_cancel_between_segments(self, services, make_timeline, generation_provider):
        """A cancelled run stops before the next segment and leaves nothing generating."""
        timeline = await make_timeline(n=3)
        token = CancellationToken()

        async def cancel_after_second(index):
            if index == 1:
                token.cancel("Timeline deleted")

        generation_provider.on_call = cancel_after_second

        run = await services.orchestrator.generate_timeline(timeline.id, USER_ID, cancel_token=token)

        assert run.cancelled
        assert run.cancel_reason == "Timeline deleted"
        assert len(generation_provider.calls) == 2
        segments = await services.segments.get_by_timeline(timeline.id)
        assert [s.status for s in segments] == [
            SegmentStatus.GENERATED,
            SegmentStatus.GENERATED,
            SegmentStatus.PENDING,
        ]
        assert not services.orchestrator.registry.is_running(timeline.id)
        assert (await services.timelines.get_by_id(timeline.id)).status == TimelineStatus.READY

    async def test_registry_cancel(self, services, make_timeline, generation_provider):
        timeline = await make_timeline(n=2)

        async def cancel_via_registry(index):
            services.orchestrator.registry.cancel(timeline.id, "Stopped by user")

        generation_provider.on_call = cancel_via_registry

        run = await services.orchestrator.generate_timeline(timeline.id, USER_ID)

        assert run.cancelled
        assert len(generation_provider.calls) == 1
        assert run.to_dict()["cancelled"] is True


class TestRunRegistry:
    async def test_one_run_per_timeline(self, services, make_timeline, generation_provider):
        timeline = await make_timeline(n=1)
        registry = services.orchestrator.registry
        held = registry.start(timeline.id)

        with pytest.raises(ConflictError):
            await services.orchestrator.generate_timeline(timeline.id, USER_ID)
        assert generation_provider.calls == []

        registry.finish(timeline.id, held)
        run = await services.orchestrator.generate_timeline(timeline.id, USER_ID)
        assert run.segments_generated == 1

    def test_finish_ignores_foreign_token(self):
        registry = RunRegistry()
        registry.start("timeline-1")
        registry.finish("timeline-1", CancellationToken())

        assert registry.is_running("timeline-1")
        assert not registry.cancel("timeline-2")
