from __future__ import annotations

import itertools
import shlex
import shutil
import tempfile
import time
import unittest
from pathlib import Path

from lazypick.errors import ProducerCancelled
from lazypick.producer import LazyContentProducer, ProducerState, command_producer, drain


def _counting_source(pulled: list[int]):
    for value in itertools.count():
        pulled.append(value)
        yield value


class LazyContentProducerTests(unittest.TestCase):
    def test_items_arrive_in_source_order_and_done_fires_once(self) -> None:
        producer = LazyContentProducer(["a", "b", "c"])
        seen: list[str] = []
        done: list[bool] = []

        def on_item(item, resume):
            seen.append(item)
            resume()

        producer.start(on_item, done.append)

        self.assertEqual(seen, ["a", "b", "c"])
        self.assertEqual(done, [False])
        self.assertIs(producer.state, ProducerState.DONE)

    def test_cancel_from_continuation_stops_after_current_item(self) -> None:
        pulled: list[int] = []
        producer = LazyContentProducer(_counting_source(pulled))
        seen: list[int] = []
        done: list[bool] = []

        def on_item(item, resume):
            seen.append(item)
            resume(cancel=len(seen) == 3)

        producer.start(on_item, done.append)

        self.assertEqual(seen, [0, 1, 2])
        self.assertEqual(pulled, [0, 1, 2])
        self.assertEqual(done, [True])
        self.assertIs(producer.state, ProducerState.CANCELLED)

    def test_truthy_return_stops_production(self) -> None:
        pulled: list[int] = []
        producer = LazyContentProducer(_counting_source(pulled))
        done: list[bool] = []
        producer.start(lambda item, resume: item == 1, done.append)
        self.assertEqual(pulled, [0, 1])
        self.assertEqual(done, [True])

    def test_nothing_is_produced_ahead_of_demand(self) -> None:
        pulled: list[int] = []
        producer = LazyContentProducer(_counting_source(pulled))
        seen: list[int] = []

        producer.start(lambda item, resume: seen.append(item))
        self.assertEqual(seen, [0])
        self.assertEqual(pulled, [0])

        producer.resume()
        producer.resume()
        self.assertEqual(seen, [0, 1, 2])
        self.assertIs(producer.state, ProducerState.PRODUCING)

        producer.cancel()
        producer.resume()
        self.assertEqual(seen, [0, 1, 2])

    def test_cancel_after_finish_does_not_fire_done_again(self) -> None:
        producer = LazyContentProducer([1])
        done: list[bool] = []
        producer.start(lambda item, resume: resume(), done.append)
        producer.cancel()
        producer.cancel()
        self.assertEqual(done, [False])
        self.assertIs(producer.state, ProducerState.DONE)

    def test_long_sources_do_not_grow_the_stack(self) -> None:
        producer = LazyContentProducer(range(50_000))
        self.assertEqual(len(drain(producer)), 50_000)

    def test_start_twice_is_rejected(self) -> None:
        producer = LazyContentProducer([1])
        drain(producer)
        with self.assertRaises(RuntimeError):
            producer.start(lambda item, resume: None)

    def test_on_close_runs_once_when_cancelled(self) -> None:
        closed: list[bool] = []
        producer = LazyContentProducer(itertools.count(), on_close=lambda: closed.append(True))
        producer.start(lambda item, resume: item >= 4 or resume())
        producer.cancel()
        self.assertEqual(closed, [True])
        self.assertEqual(producer.delivered, 5)

    def test_source_errors_propagate_and_cancel(self) -> None:
        def broken():
            yield 1
            raise OSError("disk gone")

        producer = LazyContentProducer(broken())
        done: list[bool] = []
        with self.assertRaises(OSError):
            producer.start(lambda item, resume: resume(), done.append)
        self.assertEqual(done, [True])


class DrainTests(unittest.TestCase):
    def test_drain_returns_everything(self) -> None:
        self.assertEqual(drain(LazyContentProducer([])), [])
        self.assertEqual(drain(LazyContentProducer("abc")), ["a", "b", "c"])

    def test_drain_raises_producer_cancelled_when_stopped_midway(self) -> None:
        class Stopping:
            def __iter__(self):
                return self

            def __next__(self):
                producer.cancel()
                return 0

        producer = LazyContentProducer(Stopping())
        with self.assertRaises(ProducerCancelled):
            drain(producer, raise_on_cancel=True)


class CommandProducerTests(unittest.TestCase):
    def test_streams_command_lines(self) -> None:
        self.assertEqual(drain(command_producer("printf 'a\\nb\\nc\\n'")), ["a", "b", "c"])

    def test_transform_can_rewrite_and_drop_lines(self) -> None:
        producer = command_producer(
            "printf 'a\\nb\\nc\\n'",
            transform=lambda line: None if line == "b" else line.upper(),
        )
        self.assertEqual(drain(producer), ["A", "C"])

    def test_runs_in_given_directory(self) -> None:
        self.assertEqual(drain(command_producer("pwd", cwd="/")), ["/"])

    def test_cancel_stops_every_process_of_a_compound_command(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            marker = Path(tmp) / "finished"
            producer = command_producer(
                f"cd / && (echo first; sleep 1; touch {shlex.quote(str(marker))}; echo second)"
            )
            seen: list[str] = []

            def on_item(item, resume):
                seen.append(item)
                resume(cancel=True)

            producer.start(on_item)
            time.sleep(1.5)

            self.assertEqual(seen, ["first"])
            self.assertIs(producer.state, ProducerState.CANCELLED)
            self.assertFalse(marker.exists())

    @unittest.skipIf(shutil.which("yes") is None, "yes is required")
    def test_cancel_terminates_endless_command(self) -> None:
        producer = command_producer("yes")
        seen: list[str] = []

        def on_item(item, resume):
            seen.append(item)
            resume(cancel=len(seen) == 5)

        producer.start(on_item)
        self.assertEqual(seen, ["y"] * 5)
        self.assertIs(producer.state, ProducerState.CANCELLED)


if __name__ == "__main__":
    unittest.main()
