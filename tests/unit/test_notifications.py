import unittest
from unittest.mock import MagicMock

from modelkombat.utils.notifications import (
    DESTRUCTIVE,
    CallbackNotifier,
    LoggingNotifier,
    RecordingNotifier,
)


class TestNotifiers(unittest.TestCase):

    def test_recording(self):
        notifier = RecordingNotifier()
        self.assertIsNone(notifier.last)
        notifier.notify("Catalog Updated", "Loaded 3 models")
        notifier.notify("Connection Failed", "Invalid API key", DESTRUCTIVE)
        self.assertEqual(notifier.titles(), ["Catalog Updated", "Connection Failed"])
        self.assertTrue(notifier.last.is_error)
        self.assertFalse(notifier.notifications[0].is_error)

    def test_callback_errors_do_not_propagate(self):
        notifier = CallbackNotifier()
        received = []

        def broken(_):
            raise RuntimeError("toast widget gone")

        notifier.subscribe(broken)
        notifier.subscribe(received.append)
        notifier.notify("API Key Saved", "saved")

        self.assertEqual([n.title for n in received], ["API Key Saved"])

    def test_logging_levels(self):
        logger = MagicMock()
        notifier = LoggingNotifier(logger)
        notifier.notify("Invalid Value", "bad", DESTRUCTIVE)
        notifier.notify("Catalog Updated", "ok")
        levels = [c.args[0] for c in logger.log.call_args_list]
        self.assertEqual(levels, [30, 20])


if __name__ == '__main__':
    unittest.main()
