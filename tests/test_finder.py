from __future__ import annotations

import io
import itertools
import unittest

from lazypick.errors import ConfigurationError
from lazypick.finder import FzfFinder, build_args, feed, parse_output
from lazypick.producer import LazyContentProducer, ProducerState


class RecordingStream(io.StringIO):
    def close(self) -> None:
        self.final = self.getvalue()
        super().close()


class BrokenAfter(io.StringIO):
    """Accepts ``limit`` writes, then behaves like a pipe whose reader exited."""

    def __init__(self, limit: int) -> None:
        super().__init__()
        self.limit = limit
        self.writes = 0

    def write(self, text: str) -> int:
        if self.writes >= self.limit:
            raise BrokenPipeError("reader gone")
        self.writes += 1
        return super().write(text)


class ParseOutputTests(unittest.TestCase):
    def test_query_key_and_selection(self) -> None:
        result = parse_output("foo\nctrl-x\na.txt\nb.txt\n")
        self.assertEqual(result.query, "foo")
        self.assertEqual(result.key, "ctrl-x")
        self.assertEqual(result.action_key, "ctrl-x")
        self.assertEqual(result.selected, ("a.txt", "b.txt"))

    def test_enter_maps_to_default_action(self) -> None:
        result = parse_output("\n\nb.txt\n")
        self.assertEqual(result.query, "")
        self.assertEqual(result.action_key, "default")
        self.assertEqual(result.selected, ("b.txt",))

    def test_empty_output(self) -> None:
        result = parse_output("", exit_code=1)
        self.assertEqual(result.selected, ())
        self.assertEqual(result.exit_code, 1)


class BuildArgsTests(unittest.TestCase):
    def test_assembles_flags(self) -> None:
        args = build_args(
            prompt="Git> ",
            header="cwd: ~/src",
            multi=False,
            preview="git diff {}",
            expect=["default", "ctrl-v"],
            binds={"change": "reload(cmd {q})"},
            extra={"--header-lines": "1", "--cycle": None},
        )
        self.assertEqual(
            args,
            [
                "--ansi",
                "--print-query",
                "--no-multi",
                "--prompt=Git> ",
                "--header=cwd: ~/src",
                "--preview=git diff {}",
                "--expect=ctrl-v",
                "--bind=change:reload(cmd {q})",
                "--header-lines=1",
                "--cycle",
            ],
        )

    def test_defaults_are_minimal(self) -> None:
        self.assertEqual(build_args(), ["--ansi", "--print-query", "--multi"])


class FeedTests(unittest.TestCase):
    def test_static_content_is_written_and_closed(self) -> None:
        stream = RecordingStream()
        self.assertEqual(feed(stream, ["a.txt", "multi\nline"]), 2)
        self.assertEqual(stream.final, "a.txt\nmulti\\nline\n")
        self.assertTrue(stream.closed)

    def test_producer_is_pulled_one_line_per_write(self) -> None:
        stream = RecordingStream()
        producer = LazyContentProducer(["x", "y"])
        self.assertEqual(feed(stream, producer), 2)
        self.assertEqual(stream.final, "x\ny\n")
        self.assertIs(producer.state, ProducerState.DONE)

    def test_closed_pipe_cancels_producer(self) -> None:
        pulled: list[int] = []

        def source():
            for value in itertools.count():
                pulled.append(value)
                yield str(value)

        producer = LazyContentProducer(source())
        stream = BrokenAfter(2)

        self.assertEqual(feed(stream, producer), 2)
        self.assertIs(producer.state, ProducerState.CANCELLED)
        self.assertEqual(pulled, [0, 1, 2])
        self.assertTrue(stream.closed)


class FzfFinderTests(unittest.TestCase):
    def test_missing_binary_is_a_configuration_error(self) -> None:
        with self.assertRaises(ConfigurationError):
            FzfFinder("lazypick-no-such-finder-binary").check()


if __name__ == "__main__":
    unittest.main()
