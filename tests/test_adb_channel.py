import os
import stat
import sys
import tempfile
import unittest
from pathlib import Path

from device_inventory.adb import AdbChannel
from device_inventory.config.models import AdbSettings
from device_inventory.core.errors import QueryError

FAKE_ADB = """#!/bin/sh
case "$1" in
  version) echo "Android Debug Bridge version 1.0.41" ;;
  devices) printf 'List of devices attached\\nSERIAL1\\tdevice\\nSERIAL2\\tunauthorized\\n' ;;
  -s)
    case "$4" in
      fail*) echo "error: closed" >&2; exit 3 ;;
      sleep*) exec sleep 5 ;;
      *) echo "$2|$3|$4" ;;
    esac
    ;;
  *) exit 1 ;;
esac
"""


@unittest.skipIf(sys.platform == "win32", "uses a POSIX shell script as adb")
class AdbChannelTests(unittest.IsolatedAsyncioTestCase):
    def setUp(self) -> None:
        self._tmp = tempfile.TemporaryDirectory()
        script = Path(self._tmp.name) / "adb"
        script.write_text(FAKE_ADB, encoding="utf-8")
        script.chmod(script.stat().st_mode | stat.S_IEXEC)
        self.channel = AdbChannel(AdbSettings(executable=str(script), query_timeout_seconds=1))

    def tearDown(self) -> None:
        self._tmp.cleanup()

    async def test_list_devices(self) -> None:
        devices = await self.channel.list_devices()

        self.assertEqual([(d.serial, d.state) for d in devices], [("SERIAL1", "device"), ("SERIAL2", "unauthorized")])

    async def test_query_is_sent_as_one_quoted_shell_string(self) -> None:
        output = await self.channel.run_query("SERIAL1", ["du", "-sh", "/data/app/my app"])

        self.assertEqual(output.strip(), "SERIAL1|shell|du -sh '/data/app/my app'")

    async def test_nonzero_exit_raises_query_error(self) -> None:
        with self.assertRaises(QueryError) as ctx:
            await self.channel.run_query("SERIAL1", ["fail"])

        self.assertEqual(ctx.exception.returncode, 3)
        self.assertIn("error: closed", str(ctx.exception))

    async def test_timeout_raises_query_error(self) -> None:
        with self.assertRaises(QueryError) as ctx:
            await self.channel.run_query("SERIAL1", ["sleep"])

        self.assertIn("timed out", str(ctx.exception))

    async def test_missing_executable_raises_query_error(self) -> None:
        channel = AdbChannel(AdbSettings(executable=os.path.join(self._tmp.name, "missing-adb")))

        with self.assertRaises(QueryError):
            await channel.version()


if __name__ == "__main__":
    unittest.main()
