"""Tests for pipeline orchestration and background runs."""

import time
import unittest
from concurrent.futures import ThreadPoolExecutor
from io import BytesIO
from unittest import mock

import numpy as np
import pytest

from segoverlay.compositing.blender import BlendConfig
from segoverlay.compositing.buffers import SourceImage
from segoverlay.config import Config
from segoverlay.errors import (
    InferenceError,
    ModelLoadError,
    NoImageError,
    PredictionError,
)
from segoverlay.pipeline import BackgroundRunner, PipelineState, SegmentationPipeline

from conftest import FakeClassifier, FakeSegmentor, GatedClassifier, make_image, make_noise_image

SUCCESS_HISTORY = [
    PipelineState.IDLE,
    PipelineState.CAPTURING,
    PipelineState.INFERRING,
    PipelineState.COMPOSITING,
    PipelineState.RESAMPLING,
    PipelineState.BLENDING,
    PipelineState.DONE,
]


class TestDeepLabPipeline(unittest.TestCase):
    """Tests for the class index path."""

    def test_background_only_gives_background(self):
        """All class 0 output renders the background at source resolution."""
        pipeline = SegmentationPipeline(mode=Config.MODE_DEEPLAB, classifier=FakeClassifier())
        result = pipeline.process(make_noise_image(513, 513))

        self.assertEqual(result.overlay.size, (513, 513))
        self.assertTrue((result.overlay.pixels == np.array([0, 0, 0, 255], dtype=np.uint8)).all())
        self.assertEqual(result.composite.width, 65)
        self.assertEqual(list(result.history), SUCCESS_HISTORY)

    def test_custom_background(self):
        blend_config = BlendConfig(background_color=(255, 255, 255))
        pipeline = SegmentationPipeline(blend_config=blend_config, classifier=FakeClassifier())
        result = pipeline.process(make_image(100, 60))

        self.assertTrue((result.overlay.pixels[..., :3] == 255).all())

    def test_person_everywhere_reveals_source(self):
        classifier = FakeClassifier(np.full((65, 65), Config.PERSON_CLASS, dtype=np.int32))
        pipeline = SegmentationPipeline(classifier=classifier)
        image = make_image(300, 200, color=(10, 20, 30))

        result = pipeline.process(image)

        self.assertEqual(result.overlay.size, (300, 200))
        self.assertTrue((result.overlay.pixels == np.array([10, 20, 30, 255], dtype=np.uint8)).all())
        self.assertEqual(result.model_name, "fake-deeplab")

    def test_accepts_source_image(self):
        source = SourceImage.from_pil(make_image(20, 10))
        result = SegmentationPipeline(classifier=FakeClassifier()).process(source)
        self.assertIs(result.source, source)


class TestInstancePipeline(unittest.TestCase):
    """Tests for the instance mask path."""

    def test_left_instance_reveals_left_half(self):
        left = np.zeros((64, 64), dtype=np.uint8)
        left[:, :32] = 255
        segmentor = FakeSegmentor(masks=[left])
        pipeline = SegmentationPipeline(mode=Config.MODE_INSTANCE, segmentor=segmentor,
                                        blend_config=BlendConfig(resample_method="nearest"))

        result = pipeline.process(make_image(128, 96, color=(50, 60, 70)))

        self.assertEqual(result.overlay.size, (128, 96))
        self.assertEqual(result.instance_count, 1)
        self.assertTrue((result.overlay.pixels[:, :64, :3] == (50, 60, 70)).all())
        self.assertTrue((result.overlay.pixels[:, 64:, :3] == 0).all())

    def test_no_instances_gives_background(self):
        pipeline = SegmentationPipeline(mode=Config.MODE_INSTANCE, segmentor=FakeSegmentor())
        result = pipeline.process(make_image(32, 32))

        self.assertIsNone(result.composite)
        self.assertEqual(result.instance_count, 0)
        self.assertTrue((result.overlay.pixels[..., :3] == 0).all())
        self.assertEqual(result.state, PipelineState.DONE)


class TestPipelineFailures(unittest.TestCase):
    def test_no_image_fails_while_capturing(self):
        pipeline = SegmentationPipeline(classifier=FakeClassifier())

        with self.assertRaises(NoImageError) as ctx:
            pipeline.process(None)
        self.assertEqual(list(ctx.exception.history[-2:]), [PipelineState.CAPTURING, PipelineState.FAILED])

    def test_undecodable_bytes_fail_while_capturing(self):
        classifier = FakeClassifier()
        pipeline = SegmentationPipeline(classifier=classifier)

        with self.assertRaises(NoImageError) as ctx:
            pipeline.process(b"not an image")
        self.assertEqual(ctx.exception.history[-1], PipelineState.FAILED)
        self.assertEqual(classifier.calls, 0)

    def test_accepts_encoded_bytes(self):
        buffer = BytesIO()
        make_image(12, 8, color=(9, 9, 9)).save(buffer, format="PNG")

        result = SegmentationPipeline(classifier=FakeClassifier()).process(buffer.getvalue())

        self.assertEqual(result.overlay.size, (12, 8))

    def test_inference_error_fails_while_inferring(self):
        classifier = FakeClassifier(error=PredictionError("boom"))
        pipeline = SegmentationPipeline(classifier=classifier)

        with self.assertRaises(InferenceError) as ctx:
            pipeline.process(make_image(10, 10))
        self.assertIsInstance(ctx.exception, PredictionError)
        self.assertEqual(list(ctx.exception.history[-2:]), [PipelineState.INFERRING, PipelineState.FAILED])

    def test_unexpected_backend_error_becomes_inference_error(self):
        classifier = FakeClassifier(error=TypeError("unexpected keyword 'do_resize'"))
        pipeline = SegmentationPipeline(classifier=classifier)

        with self.assertRaises(InferenceError) as ctx:
            pipeline.process(make_image(10, 10))
        self.assertIsInstance(ctx.exception.__cause__, TypeError)
        self.assertEqual(list(ctx.exception.history[-2:]), [PipelineState.INFERRING, PipelineState.FAILED])

    def test_run_returns_none_on_unexpected_backend_error(self):
        segmentor = FakeSegmentor(error=KeyError("masks"))
        pipeline = SegmentationPipeline(mode=Config.MODE_INSTANCE, segmentor=segmentor)

        with self.assertLogs("segoverlay.pipeline.processor", level="ERROR"):
            self.assertIsNone(pipeline.run(make_image(10, 10)))

    def test_backend_is_loaded_once_across_threads(self):
        constructed = []

        class SlowClassifier(FakeClassifier):
            def __init__(self, device=None):
                constructed.append(device)
                time.sleep(0.05)
                super().__init__()

        pipeline = SegmentationPipeline()
        with mock.patch("segoverlay.models.classifier.DeepLabClassifier", SlowClassifier):
            with ThreadPoolExecutor(max_workers=4) as executor:
                backends = list(executor.map(lambda _: pipeline.classifier, range(4)))

        self.assertEqual(len(constructed), 1)
        self.assertTrue(all(b is backends[0] for b in backends))

    def test_run_logs_and_returns_none(self):
        segmentor = FakeSegmentor(error=ModelLoadError("weights missing"))
        pipeline = SegmentationPipeline(mode=Config.MODE_INSTANCE, segmentor=segmentor)

        with self.assertLogs("segoverlay.pipeline.processor", level="ERROR") as logs:
            result = pipeline.run(make_image(10, 10))

        self.assertIsNone(result)
        self.assertIn("ModelLoadError", logs.output[0])

    def test_invalid_mode(self):
        with self.assertRaises(ValueError):
            SegmentationPipeline(mode="panoptic")


class TestSourceAtModelSize:
    def test_background_only_at_model_size(self, source_513):
        result = SegmentationPipeline(classifier=FakeClassifier()).process(source_513)

        assert result.source is source_513
        assert result.overlay.size == (513, 513)
        assert (result.overlay.pixels == np.array([0, 0, 0, 255], dtype=np.uint8)).all()


class TestBackgroundRunner:
    def test_publishes_result(self):
        received = []
        pipeline = SegmentationPipeline(classifier=FakeClassifier())
        with BackgroundRunner(pipeline, on_result=received.append) as runner:
            result = runner.submit(make_image(16, 16)).result(timeout=10)

        assert result is not None
        assert runner.poll() == [result]
        assert received == [result]
        assert runner.latest_result is result

    def test_failed_run_keeps_previous_result(self):
        classifier = FakeClassifier()
        pipeline = SegmentationPipeline(classifier=classifier)
        with BackgroundRunner(pipeline) as runner:
            first = runner.submit(make_image(16, 16)).result(timeout=10)
            classifier.error = PredictionError("model crashed")
            failed = runner.submit(make_image(16, 16))
            with pytest.raises(PredictionError):
                failed.result(timeout=10)

        assert runner.latest_result is first
        assert runner.poll() == [first]

    def test_unexpected_error_reaches_future_as_inference_error(self, caplog):
        pipeline = SegmentationPipeline(classifier=FakeClassifier(error=TypeError("bad kwarg")))
        with BackgroundRunner(pipeline) as runner:
            future = runner.submit(make_image(16, 16))
            with pytest.raises(InferenceError) as excinfo:
                future.result(timeout=10)

        assert excinfo.value.history[-1] == PipelineState.FAILED
        assert "bad kwarg" in caplog.text
        assert runner.latest_result is None

    def test_concurrent_runs_keep_their_own_history(self):
        classifier = GatedClassifier()
        gate = classifier.gate(red=1)
        pipeline = SegmentationPipeline(classifier=classifier)

        with BackgroundRunner(pipeline, max_workers=2) as runner:
            slow = runner.submit(make_image(16, 16, color=(1, 0, 0)))
            assert classifier.started[1].wait(timeout=10)
            classifier.error = PredictionError("second run fails")
            failing = runner.submit(make_image(16, 16, color=(2, 0, 0)))
            with pytest.raises(PredictionError) as excinfo:
                failing.result(timeout=10)
            classifier.error = None
            gate.set()
            finished = slow.result(timeout=10)

        assert excinfo.value.history[-1] == PipelineState.FAILED
        assert list(finished.history) == SUCCESS_HISTORY

    def test_superseded_run_does_not_publish(self):
        classifier = GatedClassifier()
        gate = classifier.gate(red=1)
        pipeline = SegmentationPipeline(classifier=classifier)

        with BackgroundRunner(pipeline, max_workers=2) as runner:
            slow = runner.submit(make_image(16, 16, color=(1, 0, 0)))
            assert classifier.started[1].wait(timeout=10)
            fast = runner.submit(make_image(16, 16, color=(2, 0, 0))).result(timeout=10)
            gate.set()
            stale = slow.result(timeout=10)

        assert stale is not None
        assert runner.poll() == [fast]
        assert runner.latest_result is fast


if __name__ == "__main__":
    unittest.main()
