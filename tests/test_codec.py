import json
import unittest


class TestCodec(unittest.TestCase):
    def test_selected_with_data_decodes(self) -> None:
        from tuicanvas.contracts.v1 import SelectedMessage
        from tuicanvas.ipc.codec import decode_buffer

        envs, rest = decode_buffer(b'{"type":"selected","data":{"x":1}}\n', sender="canvas")
        self.assertEqual(rest, b"")
        self.assertEqual(len(envs), 1)
        self.assertIsInstance(envs[0], SelectedMessage)
        self.assertEqual(envs[0].data, {"x": 1})

    def test_partial_line_is_kept_until_newline(self) -> None:
        from tuicanvas.contracts.v1 import ReadyMessage
        from tuicanvas.ipc.codec import LineDecoder

        dec = LineDecoder(sender="canvas")
        self.assertEqual(dec.feed(b'{"type":"rea'), [])
        self.assertEqual(dec.pending, b'{"type":"rea')
        envs = dec.feed(b'dy","scenario":"display"}\n{"type":"pong"}')
        self.assertEqual(len(envs), 1)
        self.assertIsInstance(envs[0], ReadyMessage)
        self.assertEqual(envs[0].scenario, "display")
        self.assertEqual(dec.pending, b'{"type":"pong"}')

    def test_malformed_line_is_skipped_and_reported(self) -> None:
        from tuicanvas.ipc.codec import decode_buffer

        errors = []
        envs, rest = decode_buffer(
            b'not json\n{"type":"cancelled","reason":"esc"}\n[1,2]\n',
            sender="canvas",
            on_error=errors.append,
        )
        self.assertEqual([e.type for e in envs], ["cancelled"])
        self.assertEqual(envs[0].reason, "esc")
        self.assertEqual(len(errors), 2)
        self.assertEqual(rest, b"")

    def test_missing_type_is_protocol_error(self) -> None:
        from tuicanvas.ipc.codec import ProtocolError, decode_line

        with self.assertRaises(ProtocolError):
            decode_line('{"data":1}', sender="canvas")

    def test_unknown_tag_becomes_unknown_message(self) -> None:
        from tuicanvas.contracts.v1 import UnknownMessage
        from tuicanvas.ipc.codec import decode_line

        env = decode_line('{"type":"wiggle","n":3}', sender="canvas")
        self.assertIsInstance(env, UnknownMessage)
        self.assertEqual(env.type, "wiggle")
        self.assertEqual(env.raw.get("n"), 3)

    def test_controller_tags_are_unknown_from_canvas_side(self) -> None:
        from tuicanvas.contracts.v1 import GetSelectionMessage, UnknownMessage
        from tuicanvas.ipc.codec import decode_line

        self.assertIsInstance(decode_line('{"type":"getSelection"}', sender="controller"), GetSelectionMessage)
        self.assertIsInstance(decode_line('{"type":"getSelection"}', sender="canvas"), UnknownMessage)

    def test_encode_is_one_compact_line(self) -> None:
        from tuicanvas.contracts.v1 import SelectedMessage, UpdateMessage
        from tuicanvas.ipc.codec import encode

        line = encode(SelectedMessage())
        self.assertTrue(line.endswith(b"\n"))
        self.assertEqual(line.count(b"\n"), 1)
        self.assertEqual(json.loads(line), {"type": "selected", "data": None})

        line = encode(UpdateMessage(config={"text": "a\nb"}))
        self.assertEqual(line.count(b"\n"), 1)
        self.assertEqual(json.loads(line)["config"], {"text": "a\nb"})

    def test_oversized_partial_line_is_dropped(self) -> None:
        from tuicanvas.ipc.codec import LineDecoder

        errors = []
        dec = LineDecoder(sender="canvas", on_error=errors.append, max_line_bytes=16)
        self.assertEqual(dec.feed(b'{"type":"selected","data":"' + b"x" * 64), [])
        self.assertEqual(dec.pending, b"")
        self.assertEqual(len(errors), 1)


if __name__ == "__main__":
    unittest.main()
