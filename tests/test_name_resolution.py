import unittest
from pathlib import Path

from device_inventory.config.models import NameSettings
from device_inventory.names.app_names import UNKNOWN_APP, AppNameResolver, derive_display_name
from device_inventory.names.device_db import RemoteDeviceDatabase
from device_inventory.names.device_names import UNKNOWN_DEVICE, DeviceNameResolver, synthesize_device_name

from fakes import FakeChannel, FakeInspector

APK_PATH = "/data/app/~~x==/com.example.notes-1/base.apk"
BADGING = "package: name='com.example.notes' versionCode='7'\napplication-label:'Notes Pro'\n"


class DeriveDisplayNameTests(unittest.TestCase):
    def test_last_segment_is_capitalized_and_separators_become_spaces(self) -> None:
        self.assertEqual(derive_display_name("com.example.my_cool-app"), "My cool app")
        self.assertEqual(derive_display_name("whatsapp"), "Whatsapp")
        self.assertEqual(derive_display_name("com.example.notes."), "Notes")

    def test_empty_identifier_has_no_derivation(self) -> None:
        self.assertIsNone(derive_display_name(""))
        self.assertIsNone(derive_display_name("..."))


class AppNameResolverTests(unittest.IsolatedAsyncioTestCase):
    def setUp(self) -> None:
        self.channel = FakeChannel(responses={"pm path com.example.notes": f"package:{APK_PATH}\n"})

    async def test_static_table_wins_over_derivation_when_tool_unavailable(self) -> None:
        resolver = AppNameResolver(channel=self.channel, inspector=FakeInspector(available=False))

        name = await resolver.resolve("com.google.android.gm", "SERIAL1")

        self.assertEqual(name, "Gmail")
        self.assertNotEqual(name, derive_display_name("com.google.android.gm"))
        self.assertEqual(self.channel.pulls, [])

    async def test_static_table_used_when_no_inspector(self) -> None:
        resolver = AppNameResolver(channel=self.channel, inspector=None)

        self.assertEqual(await resolver.resolve("com.whatsapp"), "WhatsApp")
        self.assertEqual(resolver.tier_names, ["known_names", "derived"])

    async def test_apk_label_is_preferred_and_artifact_removed(self) -> None:
        inspector = FakeInspector(output=BADGING)
        resolver = AppNameResolver(channel=self.channel, inspector=inspector)

        name = await resolver.resolve("com.example.notes", "SERIAL1")

        self.assertEqual(name, "Notes Pro")
        self.assertEqual(inspector.existed_during_inspect, [True])
        self.assertFalse(Path(inspector.inspected[0]).exists())
        self.assertFalse(Path(inspector.inspected[0]).parent.exists())
        self.assertEqual(self.channel.pulls[0][1], APK_PATH)

    async def test_tool_failure_falls_through_and_artifact_removed(self) -> None:
        inspector = FakeInspector(error="aapt exited with status 1")
        resolver = AppNameResolver(channel=self.channel, inspector=inspector)

        name = await resolver.resolve("com.example.notes", "SERIAL1")

        self.assertEqual(name, "Notes")
        self.assertFalse(Path(inspector.inspected[0]).exists())

    async def test_pull_failure_falls_through(self) -> None:
        self.channel.pull_failures.add(APK_PATH)
        inspector = FakeInspector(output=BADGING)
        resolver = AppNameResolver(channel=self.channel, inspector=inspector)

        self.assertEqual(await resolver.resolve("com.example.notes", "SERIAL1"), "Notes")
        self.assertEqual(inspector.inspected, [])

    async def test_missing_apk_path_falls_through(self) -> None:
        self.channel.failures.add("pm path com.spotify.music")
        resolver = AppNameResolver(channel=self.channel, inspector=FakeInspector(output=BADGING))

        self.assertEqual(await resolver.resolve("com.spotify.music", "SERIAL1"), "Spotify")

    async def test_unparseable_badging_falls_through(self) -> None:
        resolver = AppNameResolver(channel=self.channel, inspector=FakeInspector(output="ERROR: dump failed"))

        self.assertEqual(await resolver.resolve("com.example.notes", "SERIAL1"), "Notes")

    async def test_resolution_is_total(self) -> None:
        resolver = AppNameResolver(channel=FakeChannel(failures={"pm path "}), inspector=FakeInspector(error="boom"))

        for identifier in ("", "   ", ".", "com.", "x", None):
            with self.subTest(identifier=identifier):
                name = await resolver.resolve(identifier, "SERIAL1")  # type: ignore[arg-type]
                self.assertTrue(name.strip())
        self.assertEqual(await resolver.resolve(""), UNKNOWN_APP)


class SynthesizeDeviceNameTests(unittest.TestCase):
    def test_brand_prepended_and_capitalized(self) -> None:
        self.assertEqual(synthesize_device_name("SM-G950F", "samsung", "Samsung"), "Samsung SM-G950F")

    def test_no_duplicate_vendor_prefix(self) -> None:
        self.assertEqual(synthesize_device_name("Pixel 7", "pixel", ""), "Pixel 7")
        self.assertEqual(synthesize_device_name("OnePlus 11", "", "oneplus"), "OnePlus 11")

    def test_manufacturer_used_without_brand(self) -> None:
        self.assertEqual(synthesize_device_name("CPH2451", "", "OPPO"), "Oppo CPH2451")

    def test_model_alone_and_unknown(self) -> None:
        self.assertEqual(synthesize_device_name("Car Thing", "", ""), "Car Thing")
        self.assertEqual(synthesize_device_name("", "samsung", "Samsung"), UNKNOWN_DEVICE)
        self.assertEqual(synthesize_device_name(None, None, None), UNKNOWN_DEVICE)


class DeviceNameResolverTests(unittest.IsolatedAsyncioTestCase):
    def setUp(self) -> None:
        self.fetches = 0

        async def fetch(url: str) -> str:
            self.fetches += 1
            return 'put("SM-F946U1", "Galaxy Z Fold5")\nput("SM-S918B", "Galaxy S23 Ultra")\n'

        self.db = RemoteDeviceDatabase(config=NameSettings(), fetch_text=fetch)
        self.resolver = DeviceNameResolver(
            database=self.db,
            serial_patterns={"^8557R58QQS16": "Spotify Car Thing"},
        )

    async def test_live_marketing_name_is_used_verbatim(self) -> None:
        name = await self.resolver.resolve("SM-F946U1", "samsung", "  Galaxy Fold Special  ", "Samsung", "X")

        self.assertEqual(name, "Galaxy Fold Special")
        self.assertEqual(self.fetches, 0)

    async def test_unknown_marketing_name_falls_to_database(self) -> None:
        self.assertEqual(await self.resolver.resolve("sm-s918b", "samsung", "unknown", "Samsung", "X"), "Galaxy S23 Ultra")

    async def test_serial_pattern_after_database_miss(self) -> None:
        name = await self.resolver.resolve("superbird", "", "", "", "8557R58QQS16XYZ")
        self.assertEqual(name, "Spotify Car Thing")

    async def test_serial_pattern_is_anchored(self) -> None:
        name = await self.resolver.resolve("superbird", "spotify", "", "", "XX8557R58QQS16")
        self.assertEqual(name, "Spotify superbird")

    async def test_database_failure_falls_back_to_synthesis(self) -> None:
        async def broken(url: str) -> str:
            raise TimeoutError("slow")

        resolver = DeviceNameResolver(
            database=RemoteDeviceDatabase(config=NameSettings(), fetch_text=broken),
            serial_patterns={},
        )
        self.assertEqual(await resolver.resolve("SM-F946U1", "samsung", "", "", "R1"), "Samsung SM-F946U1")

    async def test_resolution_is_total(self) -> None:
        resolver = DeviceNameResolver(database=None, serial_patterns={})
        for args in ((), ("", "", "", "", ""), (None, None, None, None, None), ("  ", " ", "unknown", "", "")):
            with self.subTest(args=args):
                name = await resolver.resolve(*args)
                self.assertTrue(name.strip())
        self.assertEqual(await resolver.resolve(), UNKNOWN_DEVICE)


if __name__ == "__main__":
    unittest.main()
