import signal
import subprocess
import unittest
from unittest import mock

from formsite.ports import find_listening_pids, free_port


class FreePortTests(unittest.TestCase):
    @mock.patch("formsite.ports.os.getpid", return_value=999)
    @mock.patch("formsite.ports.subprocess.run")
    def test_find_listening_pids(self, run, _getpid):
        run.return_value = subprocess.CompletedProcess([], 0, stdout="123\n456\n999\n")
        self.assertEqual(find_listening_pids(5000), [123, 456])
        self.assertIn("-iTCP:5000", run.call_args.args[0])

    @mock.patch("formsite.ports.subprocess.run", side_effect=FileNotFoundError("lsof"))
    def test_missing_lsof_is_ignored(self, _run):
        self.assertEqual(find_listening_pids(5000), [])
        self.assertEqual(free_port(5000), [])

    @mock.patch("formsite.ports.os.kill")
    @mock.patch("formsite.ports.find_listening_pids", return_value=[11, 22])
    def test_free_port_signals_listeners(self, _find, kill):
        kill.side_effect = [None, ProcessLookupError()]
        self.assertEqual(free_port(5000), [11])
        kill.assert_any_call(11, signal.SIGTERM)
        kill.assert_any_call(22, signal.SIGTERM)


if __name__ == "__main__":
    unittest.main()
