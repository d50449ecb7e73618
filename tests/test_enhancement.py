"""Tests for enhancement jobs: state machine, queueing, processing and draining."""

import pytest

from framechain.enhancement import EnhancementRequest, EnhancementWorker, JobStatus
from framechain.errors import ConflictError, InvalidRequestError, InvalidTransitionError, NotFoundError
from framechain.models import EnhanceStatus

USER_ID = "user-1"
MODEL_ID = "replicate-esrgan"


async def _segment_with_video(services, make_timeline, n=1):
    timeline = await make_timeline(n=n)
    segments = await services.segments.get_by_timeline(timeline.id)
    for i, segment in enumerate(segments):
        await services.segments.update(segment.id, video_url=f"https://cdn.test/videos/raw-{i}.mp4")
    return timeline, await services.segments.get_by_timeline(timeline.id)


def _request(segment_id, **overrides):
    data = {"segment_id": segment_id, "user_id": USER_ID, "model_id": MODEL_ID}
    data.update(overrides)
    return EnhancementRequest(**data)


class TestJobStatus:
    @pytest.mark.parametrize(
        "current,target",
        [
            (JobStatus.QUEUED, JobStatus.PROCESSING),
            (JobStatus.QUEUED, JobStatus.FAILED),
            (JobStatus.PROCESSING, JobStatus.DONE),
            (JobStatus.PROCESSING, JobStatus.FAILED),
        ],
    )
    def test_allowed(self, current, target):
        assert current.can_transition(target)

    @pytest.mark.parametrize(
        "current,target",
        [
            (JobStatus.QUEUED, JobStatus.DONE),
            (JobStatus.DONE, JobStatus.PROCESSING),
            (JobStatus.FAILED, JobStatus.QUEUED),
            (JobStatus.PROCESSING, JobStatus.QUEUED),
        ],
    )
    def test_rejected(self, current, target):
        assert not current.can_transition(target)

    def test_terminal_states(self):
        assert JobStatus.DONE.is_terminal
        assert JobStatus.FAILED.is_terminal
        assert not JobStatus.QUEUED.is_terminal


class TestUpscalerRegistry:
    async def test_ordered_by_priority(self, services):
        models = await services.enhancement.get_upscalers()

        assert len(models) == 7
        assert models[0].id == "replicate-esrgan"
        assert models[1].id == "topaz-video-ai"
        assert models[0].to_api()["displayName"] == "Real-ESRGAN Video"

    async def test_by_provider(self, services):
        replicate = await services.enhancement.get_upscalers_by_provider("replicate")
        assert {m.id for m in replicate} == {
            "replicate-esrgan",
            "replicate-esrgan-anime",
            "nightmareai-hd",
            "codeformer-face",
        }

    async def test_unknown_model(self, services):
        with pytest.raises(NotFoundError, match="Upscaler model not found: nope"):
            await services.enhancement.get_upscaler("nope")

    async def test_recommended_is_highest_priority(self, services):
        assert (await services.upscalers.get_recommended()).id == "replicate-esrgan"


class TestQueue:
    async def test_queue_mirrors_onto_segment(self, services, make_timeline):
        _, (segment,) = await _segment_with_video(services, make_timeline)

        job = await services.enhancement.queue(_request(segment.id, scale_factor=4))

        assert job.status == JobStatus.QUEUED
        assert job.scale_factor == 4
        assert job.provider == "replicate"
        assert job.input_url == "https://cdn.test/videos/raw-0.mp4"
        assert job.timeline_id == segment.timeline_id

        stored = await services.segments.get_by_id(segment.id)
        assert stored.enhance_enabled
        assert stored.enhance_model == MODEL_ID
        assert stored.enhance_status == EnhanceStatus.QUEUED

    async def test_default_scale_factor(self, services, make_timeline):
        _, (segment,) = await _segment_with_video(services, make_timeline)
        job = await services.enhancement.queue(_request(segment.id))
        assert job.scale_factor == 2

    async def test_unsupported_scale(self, services, make_timeline):
        _, (segment,) = await _segment_with_video(services, make_timeline)

        with pytest.raises(InvalidRequestError, match="Scale factor 8x not supported by Real-ESRGAN Video"):
            await services.enhancement.queue(_request(segment.id, scale_factor=8))

    async def test_unknown_model_rejected(self, services, make_timeline):
        _, (segment,) = await _segment_with_video(services, make_timeline)

        with pytest.raises(InvalidRequestError, match="Upscaler model not found: nope"):
            await services.enhancement.queue(_request(segment.id, model_id="nope"))

    async def test_needs_a_video(self, services, make_timeline):
        timeline = await make_timeline(n=1)
        segment = (await services.segments.get_by_timeline(timeline.id))[0]

        with pytest.raises(InvalidRequestError, match="No video to enhance"):
            await services.enhancement.queue(_request(segment.id))

    async def test_missing_segment(self, services):
        with pytest.raises(NotFoundError):
            await services.enhancement.queue(_request("segment-missing"))

    async def test_second_job_refused_while_first_active(self, services, make_timeline):
        _, (segment,) = await _segment_with_video(services, make_timeline)
        first = await services.enhancement.queue(_request(segment.id))

        with pytest.raises(ConflictError, match=first.id):
            await services.enhancement.queue(_request(segment.id, scale_factor=4))

        await services.enhancement.process(first.id)
        second = await services.enhancement.queue(_request(segment.id, scale_factor=4))
        assert second.status == JobStatus.QUEUED


class TestProcess:
    async def test_success(self, services, make_timeline, enhancement_provider):
        _, (segment,) = await _segment_with_video(services, make_timeline)
        job = await services.enhancement.queue(_request(segment.id))

        result = await services.enhancement.process(job.id)

        assert result.success
        assert result.output_url == "https://cdn.test/enhanced/1.mp4"
        assert enhancement_provider.calls == [
            {"model": MODEL_ID, "input_url": "https://cdn.test/videos/raw-0.mp4", "scale_factor": 2}
        ]

        done = await services.enhancement.get_job(job.id)
        assert done.status == JobStatus.DONE
        assert done.progress == 100
        assert done.output_url == result.output_url
        assert done.started_at is not None
        assert done.completed_at is not None

        stored = await services.segments.get_by_id(segment.id)
        assert stored.enhance_status == EnhanceStatus.DONE
        assert stored.enhanced_video_url == result.output_url
        assert stored.video_url == "https://cdn.test/videos/raw-0.mp4"

        transitions = await services.jobs.get_transitions(job.id)
        assert [(t.from_state, t.to_state) for t in transitions] == [
            (None, "queued"),
            ("queued", "processing"),
            ("processing", "done"),
        ]

    async def test_failure_is_recorded(self, services, make_timeline, enhancement_provider):
        """Provider failures land on the job, the segment and the audit log."""
        enhancement_provider.fail = True
        _, (segment,) = await _segment_with_video(services, make_timeline)
        job = await services.enhancement.queue(_request(segment.id))

        result = await services.enhancement.process(job.id)

        assert not result.success
        assert "CUDA out of memory" in result.error
        failed = await services.enhancement.get_job(job.id)
        assert failed.status == JobStatus.FAILED
        assert failed.error_message == result.error

        stored = await services.segments.get_by_id(segment.id)
        assert stored.enhance_status == EnhanceStatus.FAILED
        assert stored.enhance_error == result.error
        assert stored.enhanced_video_url is None

        transitions = await services.jobs.get_transitions(job.id)
        assert transitions[-1].error_snippet == result.error

    async def test_terminal_job_cannot_be_reprocessed(self, services, make_timeline, enhancement_provider):
        _, (segment,) = await _segment_with_video(services, make_timeline)
        job = await services.enhancement.queue(_request(segment.id))
        await services.enhancement.process(job.id)

        with pytest.raises(InvalidTransitionError):
            await services.enhancement.process(job.id)
        assert len(enhancement_provider.calls) == 1

    async def test_missing_job(self, services):
        with pytest.raises(NotFoundError):
            await services.enhancement.process("enhance-missing")

    async def test_older_job_does_not_overwrite_newer_projection(
        self, services, make_timeline, enhancement_provider
    ):
        """Only the newest job of a segment drives its enhancement fields."""
        _, (segment,) = await _segment_with_video(services, make_timeline)
        request = _request(
            segment.id, timeline_id=segment.timeline_id, input_url=segment.video_url
        )
        older = await services.jobs.create(request, "replicate", 2)
        newer = await services.jobs.create(request, "replicate", 2)

        await services.enhancement.process(newer.id)
        enhancement_provider.fail = True
        result = await services.enhancement.process(older.id)

        assert not result.success
        assert (await services.enhancement.get_job(older.id)).status == JobStatus.FAILED
        stored = await services.segments.get_by_id(segment.id)
        assert stored.enhance_status == EnhanceStatus.DONE
        assert stored.enhanced_video_url == "https://cdn.test/enhanced/1.mp4"
        assert stored.enhance_error is None


class TestEnhanceTimeline:
    async def test_queues_eligible_and_reports_errors(self, services, make_timeline):
        timeline, segments = await _segment_with_video(services, make_timeline, n=4)
        for segment in segments[:3]:
            await services.enhancement.enable(segment.id, MODEL_ID)
        await services.segments.update(segments[2].id, video_url=None)
        await services.segments.update(segments[3].id, enhance_enabled=True)

        batch = await services.enhancement.enhance_timeline(timeline.id, USER_ID)

        assert batch.queued == 2
        assert len(batch.job_ids) == 2
        assert batch.errors == [
            f"Segment {segments[2].id}: No video to enhance",
            f"Segment {segments[3].id}: No upscaler model selected",
        ]
        assert len(await services.enhancement.pending_jobs(timeline.id)) == 2

    async def test_skips_segments_already_queued(self, services, make_timeline):
        timeline, segments = await _segment_with_video(services, make_timeline, n=2)
        for segment in segments:
            await services.enhancement.enable(segment.id, MODEL_ID)
        await services.enhancement.enhance_timeline(timeline.id, USER_ID)

        again = await services.enhancement.enhance_timeline(timeline.id, USER_ID)

        assert again.queued == 0
        assert again.errors == []

    async def test_timeline_status_counts(self, services, make_timeline):
        timeline, segments = await _segment_with_video(services, make_timeline, n=2)
        job = await services.enhancement.queue(_request(segments[0].id))
        await services.enhancement.process(job.id)

        status = await services.enhancement.timeline_status(timeline.id)

        assert status["totalSegments"] == 2
        assert status["enabledCount"] == 1
        assert status["enhancedCount"] == 1
        assert status["pendingCount"] == 0
        assert status["segments"][0]["status"] == "done"


class TestSelection:
    async def test_enable_unknown_model(self, services, make_timeline):
        _, (segment,) = await _segment_with_video(services, make_timeline)
        with pytest.raises(NotFoundError):
            await services.enhancement.enable(segment.id, "nope")

    async def test_enable_all(self, services, make_timeline):
        timeline = await make_timeline(n=3)

        updated = await services.enhancement.enable_all(timeline.id, "topaz-video-ai")

        assert updated == 3
        segments = await services.segments.get_by_timeline(timeline.id)
        assert all(s.enhance_enabled for s in segments)
        assert {s.enhance_model for s in segments} == {"topaz-video-ai"}

    async def test_enable_all_unknown_model(self, services, make_timeline):
        timeline = await make_timeline(n=2)

        with pytest.raises(NotFoundError):
            await services.enhancement.enable_all(timeline.id, "nope")
        segments = await services.segments.get_by_timeline(timeline.id)
        assert not any(s.enhance_enabled for s in segments)

    async def test_disable_refused_while_queued(self, services, make_timeline):
        _, (segment,) = await _segment_with_video(services, make_timeline)
        await services.enhancement.queue(_request(segment.id))

        with pytest.raises(ConflictError):
            await services.enhancement.disable(segment.id)

    async def test_disable_after_done(self, services, make_timeline):
        _, (segment,) = await _segment_with_video(services, make_timeline)
        job = await services.enhancement.queue(_request(segment.id))
        await services.enhancement.process(job.id)

        disabled = await services.enhancement.disable(segment.id)

        assert not disabled.enhance_enabled
        assert disabled.enhance_model is None

    async def test_segment_status(self, services, make_timeline):
        _, (segment,) = await _segment_with_video(services, make_timeline)
        job = await services.enhancement.queue(_request(segment.id))

        status = await services.enhancement.segment_status(segment.id)

        assert status["status"] == "queued"
        assert status["rawUrl"] == "https://cdn.test/videos/raw-0.mp4"
        assert [j["id"] for j in status["jobs"]] == [job.id]


class TestEnhancementWorker:
    async def test_drain_processes_queued_jobs(self, services, make_timeline, enhancement_provider):
        _, segments = await _segment_with_video(services, make_timeline, n=3)
        for segment in segments:
            await services.enhancement.queue(_request(segment.id))
        worker = EnhancementWorker(services.enhancement, services.jobs, concurrency=1)

        stats = await worker.drain(show_progress=False)

        assert stats["total"] == 3
        assert stats["succeeded"] == 3
        assert stats["failed"] == 0
        assert len(enhancement_provider.calls) == 3
        assert await services.jobs.list_queued() == []

    async def test_drain_respects_max_jobs(self, services, make_timeline):
        _, segments = await _segment_with_video(services, make_timeline, n=3)
        for segment in segments:
            await services.enhancement.queue(_request(segment.id))
        worker = EnhancementWorker(services.enhancement, services.jobs, concurrency=1)

        stats = await worker.drain(max_jobs=2, show_progress=False)

        assert stats["total"] == 2
        assert len(await services.jobs.list_queued()) == 1

    async def test_drain_counts_failures(self, services, make_timeline, enhancement_provider):
        enhancement_provider.fail = True
        _, (segment,) = await _segment_with_video(services, make_timeline)
        await services.enhancement.queue(_request(segment.id))
        worker = EnhancementWorker(services.enhancement, services.jobs, concurrency=1)

        stats = await worker.drain(show_progress=False)

        assert stats["failed"] == 1

    async def test_drain_with_nothing_queued(self, services):
        stats = await services.worker.drain(show_progress=False)
        assert stats["total"] == 0


class TestRegeneratedSegment:
    async def _generated_segment(self, services, make_timeline):
        timeline = await make_timeline(n=1)
        await services.orchestrator.generate_timeline(timeline.id, USER_ID)
        return timeline, (await services.segments.get_by_timeline(timeline.id))[0]

    async def test_new_video_clears_old_enhancement(self, services, make_timeline):
        timeline, segment = await self._generated_segment(services, make_timeline)
        job = await services.enhancement.queue(_request(segment.id))
        await services.enhancement.process(job.id)

        await services.generation.regenerate(segment.id, USER_ID, override_prompt="new")

        stored = await services.segments.get_by_id(segment.id)
        assert stored.video_url == "https://cdn.test/videos/1.mp4"
        assert stored.enhance_status == EnhanceStatus.NONE
        assert stored.enhanced_video_url is None
        assert stored.enhance_enabled

        batch = await services.enhancement.enhance_timeline(timeline.id, USER_ID)
        assert batch.queued == 1
        requeued = await services.enhancement.get_job(batch.job_ids[0])
        assert requeued.input_url == "https://cdn.test/videos/1.mp4"

    async def test_job_for_replaced_video_leaves_segment_alone(self, services, make_timeline):
        _, segment = await self._generated_segment(services, make_timeline)
        job = await services.enhancement.queue(_request(segment.id))

        await services.generation.regenerate(segment.id, USER_ID)
        result = await services.enhancement.process(job.id)

        assert result.success
        stored = await services.segments.get_by_id(segment.id)
        assert stored.enhance_status == EnhanceStatus.NONE
        assert stored.enhanced_video_url is None
