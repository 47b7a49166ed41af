import random
import unittest

from a3s.navigation import (
    Command,
    ConfirmationPrompt,
    KeyDispatcher,
    NavigationController,
    classify_key,
)


class TestNavigationController(unittest.TestCase):
    def test_starts_at_zero(self) -> None:
        self.assertEqual(NavigationController(5).selected_index, 0)

    def test_move_next_and_previous(self) -> None:
        nav = NavigationController(3)
        nav.move_next()
        nav.move_next()
        self.assertEqual(nav.selected_index, 2)
        nav.move_previous()
        self.assertEqual(nav.selected_index, 1)

    def test_wraparound(self) -> None:
        nav = NavigationController(4)
        nav.move_previous()
        self.assertEqual(nav.selected_index, 3)
        nav.move_next()
        self.assertEqual(nav.selected_index, 0)

    def test_single_item_moves_are_noops(self) -> None:
        nav = NavigationController(1)
        for _ in range(5):
            nav.move_next()
            self.assertEqual(nav.selected_index, 0)
            nav.move_previous()
            self.assertEqual(nav.selected_index, 0)

    def test_empty_list_moves_are_noops(self) -> None:
        nav = NavigationController(0)
        nav.move_next()
        nav.move_previous()
        self.assertEqual(nav.selected_index, 0)

    def test_index_stays_in_bounds(self) -> None:
        rng = random.Random(7)
        for item_count in range(1, 9):
            nav = NavigationController(item_count)
            for _ in range(200):
                if rng.random() < 0.5:
                    nav.move_next()
                else:
                    nav.move_previous()
                self.assertGreaterEqual(nav.selected_index, 0)
                self.assertLess(nav.selected_index, item_count)

    def test_confirm_and_quit_callbacks(self) -> None:
        selected: list[int] = []
        quits: list[bool] = []
        nav = NavigationController(
            3, on_select=selected.append, on_quit=lambda: quits.append(True)
        )
        nav.move_next()
        nav.confirm_selection()
        self.assertEqual(selected, [1])
        self.assertEqual(nav.selected_index, 1)
        nav.request_quit()
        self.assertEqual(quits, [True])

    def test_callbacks_are_optional(self) -> None:
        nav = NavigationController(2)
        nav.confirm_selection()
        nav.request_quit()
        self.assertEqual(nav.selected_index, 0)

    def test_item_count_shrink_resets_out_of_range_index(self) -> None:
        nav = NavigationController(5)
        nav.move_previous()
        self.assertEqual(nav.selected_index, 4)
        nav.set_item_count(3)
        self.assertEqual(nav.selected_index, 0)

    def test_item_count_shrink_while_inactive_stays_in_bounds(self) -> None:
        nav = NavigationController(5)
        nav.move_previous()
        nav.set_active(False)
        nav.set_item_count(2)
        self.assertEqual(nav.item_count, 2)
        self.assertEqual(nav.selected_index, 0)

    def test_item_count_growth_while_inactive_keeps_index(self) -> None:
        nav = NavigationController(5)
        nav.move_next()
        nav.set_active(False)
        nav.set_item_count(8)
        self.assertEqual(nav.selected_index, 1)

    def test_item_count_change_keeps_valid_index(self) -> None:
        nav = NavigationController(5)
        nav.move_next()
        nav.set_item_count(10)
        self.assertEqual(nav.selected_index, 1)

    def test_activation_resets_index(self) -> None:
        nav = NavigationController(5)
        nav.move_next()
        nav.move_next()
        nav.set_active(False)
        self.assertEqual(nav.selected_index, 2)
        nav.set_active(True)
        self.assertEqual(nav.selected_index, 0)

    def test_staying_active_keeps_index(self) -> None:
        nav = NavigationController(5)
        nav.move_next()
        nav.set_active(True)
        self.assertEqual(nav.selected_index, 1)

    def test_handle_commands(self) -> None:
        selected: list[int] = []
        nav = NavigationController(3, on_select=selected.append)
        nav.handle(Command.DOWN)
        nav.handle(Command.DOWN)
        nav.handle(Command.UP)
        nav.handle(Command.CONFIRM)
        nav.handle(Command.BACK)
        self.assertEqual(selected, [1])
        self.assertEqual(nav.selected_index, 1)

    def test_registers_listener_once_and_toggles_eligibility(self) -> None:
        dispatcher = KeyDispatcher()
        nav = NavigationController(3, active=False, dispatcher=dispatcher)
        self.assertEqual(dispatcher.listeners, [nav.listener])
        self.assertFalse(nav.listener.active)
        self.assertFalse(dispatcher.dispatch(Command.DOWN))
        nav.set_active(True)
        self.assertTrue(dispatcher.dispatch(Command.DOWN))
        self.assertEqual(nav.selected_index, 1)
        self.assertEqual(len(dispatcher.listeners), 1)


class TestClassifyKey(unittest.TestCase):
    def test_movement_keys(self) -> None:
        self.assertIs(classify_key("up"), Command.UP)
        self.assertIs(classify_key("k", "k"), Command.UP)
        self.assertIs(classify_key("down"), Command.DOWN)
        self.assertIs(classify_key("j", "j"), Command.DOWN)

    def test_action_keys(self) -> None:
        self.assertIs(classify_key("enter", "\r"), Command.CONFIRM)
        self.assertIs(classify_key("left"), Command.BACK)
        self.assertIs(classify_key("escape", "\x1b"), Command.BACK)
        self.assertIs(classify_key("q", "q"), Command.QUIT)
        self.assertIs(classify_key("r", "r"), Command.REFRESH)
        self.assertIs(classify_key("c", "c"), Command.CLEAR_CACHE)
        self.assertIs(classify_key("shift+c", "C"), Command.CLEAR_CACHE)

    def test_unknown_keys(self) -> None:
        self.assertIsNone(classify_key("x", "x"))
        self.assertIsNone(classify_key("right"))


class TestKeyDispatcher(unittest.TestCase):
    def setUp(self) -> None:
        self.dispatcher = KeyDispatcher()
        self.first: list[Command] = []
        self.second: list[Command] = []
        self.l1 = self.dispatcher.register(self.first.append)
        self.l2 = self.dispatcher.register(self.second.append)

    def test_back_goes_to_latest_listener(self) -> None:
        self.dispatcher.dispatch(Command.BACK)
        self.assertEqual(self.first, [])
        self.assertEqual(self.second, [Command.BACK])

    def test_other_commands_go_to_earliest_listener(self) -> None:
        for command in (Command.UP, Command.DOWN, Command.CONFIRM, Command.QUIT):
            self.dispatcher.dispatch(command)
        self.assertEqual(
            self.first, [Command.UP, Command.DOWN, Command.CONFIRM, Command.QUIT]
        )
        self.assertEqual(self.second, [])

    def test_inactive_listener_never_receives(self) -> None:
        self.l2.active = False
        self.dispatcher.dispatch(Command.BACK)
        self.assertEqual(self.first, [Command.BACK])
        self.assertEqual(self.second, [])

        self.l1.active = False
        self.l2.active = True
        self.dispatcher.dispatch(Command.DOWN)
        self.assertEqual(self.second, [Command.DOWN])
        self.assertEqual(self.first, [Command.BACK])

    def test_no_active_listener(self) -> None:
        self.l1.active = False
        self.l2.active = False
        self.assertFalse(self.dispatcher.dispatch(Command.DOWN))
        self.assertFalse(self.dispatcher.dispatch(None))
        self.assertEqual(self.first + self.second, [])

    def test_claims_take_precedence_over_order(self) -> None:
        refreshes: list[Command] = []
        self.dispatcher.register(refreshes.append, claims={Command.REFRESH})
        self.dispatcher.dispatch(Command.REFRESH)
        self.dispatcher.dispatch(Command.UP)
        self.assertEqual(refreshes, [Command.REFRESH])
        self.assertEqual(self.second, [])
        self.assertEqual(self.first, [Command.UP])

    def test_inactive_claimant_falls_back_to_order(self) -> None:
        claimed: list[Command] = []
        listener = self.dispatcher.register(
            claimed.append, active=False, claims={Command.DOWN}
        )
        self.dispatcher.dispatch(Command.DOWN)
        self.assertEqual(self.first, [Command.DOWN])
        listener.active = True
        self.dispatcher.dispatch(Command.DOWN)
        self.assertEqual(claimed, [Command.DOWN])

    def test_unregister(self) -> None:
        self.dispatcher.unregister(self.l1)
        self.dispatcher.dispatch(Command.DOWN)
        self.assertEqual(self.second, [Command.DOWN])
        self.dispatcher.unregister(self.l1)


class TestConfirmationPrompt(unittest.TestCase):
    def setUp(self) -> None:
        self.confirmed = 0
        self.cancelled = 0

        def confirm() -> None:
            self.confirmed += 1

        def cancel() -> None:
            self.cancelled += 1

        self.prompt = ConfirmationPrompt("Clear all cached resources?", confirm, cancel)

    def test_prompt_text(self) -> None:
        self.assertEqual(self.prompt.prompt, "Clear all cached resources? (y/N)")

    def test_yes_confirms(self) -> None:
        for key, character in (("y", "y"), ("Y", "Y"), ("shift+y", "Y")):
            self.setUp()
            self.assertTrue(self.prompt.handle(key, character))
            self.assertEqual((self.confirmed, self.cancelled), (1, 0))

    def test_no_escape_enter_cancel(self) -> None:
        for key, character in (
            ("n", "n"),
            ("N", "N"),
            ("escape", "\x1b"),
            ("enter", "\r"),
        ):
            self.setUp()
            self.assertTrue(self.prompt.handle(key, character))
            self.assertEqual((self.confirmed, self.cancelled), (0, 1))

    def test_other_keys_ignored(self) -> None:
        for key, character in (("x", "x"), ("space", " "), ("up", None), ("q", "q")):
            self.assertFalse(self.prompt.handle(key, character))
        self.assertEqual((self.confirmed, self.cancelled), (0, 0))


if __name__ == "__main__":
    unittest.main()
