import unittest

from bbs_client import render
from bbs_client import screen as scr
from bbs_client.screen import BufferScreen
from bbs_client.session import ConnectionIdentity, ConnectionState


class FormatterTests(unittest.TestCase):
    def test_sizes_and_durations(self):
        self.assertEqual(render.format_size(512), "512B")
        self.assertEqual(render.format_size(2048), "2.0KB")
        self.assertEqual(render.format_size(None), "?")
        self.assertEqual(render.format_duration(42), "42s")
        self.assertEqual(render.format_duration(125), "2m 5s")
        self.assertEqual(render.format_duration(3720), "1h 2m")

    def test_bad_timestamps_render_placeholders(self):
        self.assertEqual(render.format_datetime(None), "--/--/-- --:--")
        self.assertEqual(render.format_clock("soon"), "--:--")

    def test_newest_first(self):
        posts = [{"id": 1, "created_at": 10}, {"id": 2, "created_at": 30}, {"id": 3}]
        self.assertEqual([p["id"] for p in render.newest_first(posts)], [2, 1, 3])

    def test_identity_line(self):
        agent = ConnectionIdentity(state=ConnectionState.ASSIGNED_AGENT, node_id=3, max_nodes=8)
        observer = ConnectionIdentity(state=ConnectionState.ASSIGNED_OBSERVER, observer_slot=5, max_observers=50)
        self.assertEqual(render.identity_line(agent), "NODE 03/8")
        self.assertEqual(render.identity_line(observer), "OBSERVER 005/50")


class BufferScreenTests(unittest.TestCase):
    def test_write_erase_and_clear(self):
        screen = BufferScreen()
        screen.write("ab", scr.STYLE_INFO)
        screen.write("c")
        screen.erase_char()
        screen.erase_char()
        self.assertEqual(screen.plain_lines(), ["a"])
        screen.writeln()
        screen.writeln("next")
        self.assertEqual(screen.plain_lines(), ["a", "next", ""])
        screen.clear()
        self.assertEqual(screen.text(), "")
        self.assertEqual(screen.clears, 1)

    def test_history_is_bounded(self):
        screen = BufferScreen(max_lines=5)
        for n in range(20):
            screen.writeln(str(n))
        self.assertEqual(len(screen.lines), 5)
        self.assertEqual(screen.plain_lines()[-2], "19")

    def test_sysop_reply_box(self):
        screen = BufferScreen(width=60)
        render.sysop_reply(screen, "Keep the line open.")
        self.assertIn("Keep the line open.", screen.text())
        render.sysop_reply(screen, None)
        self.assertIn("SYSOP UNAVAILABLE.", screen.text())

    def test_gallery_draws_only_the_current_page(self):
        screen = BufferScreen(width=60)
        pieces = [{"id": n, "title": f"piece-{n}", "content": "*"} for n in range(1, 8)]
        render.gallery(screen, pieces, 2, 3, 3, "votes")
        text = screen.text()
        self.assertIn("7 pieces • Page 3/3", text)
        self.assertIn("[07] piece-7", text)
        self.assertNotIn("piece-6", text)
        self.assertNotIn("[01]", text)


if __name__ == "__main__":
    unittest.main()
