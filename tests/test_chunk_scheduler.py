import unittest
from pathlib import Path
import sys

import numpy as np

ROOT_DIR = Path(__file__).resolve().parents[1]
if str(ROOT_DIR) not in sys.path:
    sys.path.insert(0, str(ROOT_DIR))

from pipeline.chunk_scheduler import ChunkScheduler
from sources.audio_buffer import AudioBuffer


def make_buffer(num_samples: int) -> AudioBuffer:
    return AudioBuffer(samples=np.zeros((num_samples,), dtype=np.float32))


class TestChunkScheduler(unittest.TestCase):
    def test_short_buffer_is_single_chunk(self) -> None:
        chunks = list(ChunkScheduler(chunk_seconds=30, overlap_seconds=5).schedule(make_buffer(100000)))

        self.assertEqual(len(chunks), 1)
        self.assertEqual((chunks[0].start_sample, chunks[0].end_sample), (0, 100000))
        self.assertEqual(len(chunks[0].samples), 100000)

    def test_chunks_cover_buffer_without_gaps(self) -> None:
        scheduler = ChunkScheduler(chunk_seconds=2, overlap_seconds=0.5)

        for total in (1, 31999, 32000, 32001, 56000, 100000, 160123):
            chunks = list(scheduler.schedule(make_buffer(total)))

            self.assertEqual(chunks[0].start_sample, 0)
            self.assertEqual(chunks[-1].end_sample, total)
            for prev, nxt in zip(chunks, chunks[1:]):
                # every chunk starts inside the previous one
                self.assertLessEqual(nxt.start_sample, prev.end_sample)
            self.assertEqual(len(chunks), scheduler.count(total, 16000))

    def test_next_chunk_starts_overlap_before_previous_end(self) -> None:
        scheduler = ChunkScheduler(chunk_seconds=2, overlap_seconds=0.5)
        chunks = list(scheduler.schedule(make_buffer(100000)))

        self.assertEqual([c.index for c in chunks], list(range(len(chunks))))
        for prev, nxt in zip(chunks, chunks[1:]):
            self.assertEqual(nxt.start_sample, prev.end_sample - 8000)
        for chunk in chunks[:-1]:
            self.assertEqual(len(chunk), 32000)
        self.assertLessEqual(len(chunks[-1]), 32000)

    def test_chunks_are_views_of_the_buffer(self) -> None:
        samples = np.arange(48000, dtype=np.float32) / 48000.0
        buffer = AudioBuffer(samples=samples)
        chunks = list(ChunkScheduler(chunk_seconds=2, overlap_seconds=1).schedule(buffer))

        second = chunks[1]
        np.testing.assert_array_equal(second.samples, buffer.samples[16000:48000])
        self.assertTrue(np.shares_memory(second.samples, buffer.samples))

    def test_empty_buffer_yields_nothing(self) -> None:
        scheduler = ChunkScheduler()

        self.assertEqual(list(scheduler.schedule(AudioBuffer.empty())), [])
        self.assertEqual(scheduler.count(0, 16000), 0)

    def test_schedule_can_be_repeated(self) -> None:
        scheduler = ChunkScheduler(chunk_seconds=2, overlap_seconds=0.5)
        buffer = make_buffer(70000)

        first = [(c.start_sample, c.end_sample) for c in scheduler.schedule(buffer)]
        second = [(c.start_sample, c.end_sample) for c in scheduler.schedule(buffer)]
        self.assertEqual(first, second)

    def test_rejects_invalid_windows(self) -> None:
        with self.assertRaises(ValueError):
            ChunkScheduler(chunk_seconds=5, overlap_seconds=5)
        with self.assertRaises(ValueError):
            ChunkScheduler(chunk_seconds=0, overlap_seconds=0)
        with self.assertRaises(ValueError):
            ChunkScheduler(chunk_seconds=5, overlap_seconds=-1)


if __name__ == "__main__":
    unittest.main()
