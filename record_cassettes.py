"""
Script to record VCR cassettes with real HTTP interactions.

Run this once with real portal settings to create the cassettes replayed by
tests/test_cassettes.py.
"""

import subprocess
import sys
from pathlib import Path

from pydantic import ValidationError

from rebooker.config import LoginDetails, PortalDetails


def check_settings() -> bool:
    """Check if credentials and portal settings are available."""
    try:
        LoginDetails()
        PortalDetails()
        return True
    except ValidationError:
        return False


def main() -> int:
    """Record VCR cassettes."""
    print("🎬 VCR CASSETTE RECORDING SCRIPT")
    print("=" * 40)

    if not check_settings():
        print("❌ Missing settings!")
        print("Please set up your .env file with:")
        print("   EMAIL=your_email")
        print("   PASSWORD=your_password")
        print("   SCHEDULE_ID=your_schedule_id")
        print("   FACILITY_ID=facility_id[,facility_id...]")
        print("   LOCALE=your_locale")
        return 1

    print("✅ Settings found")
    print("🔄 Recording real HTTP interactions...")
    print()

    cmd = [sys.executable, "-m", "pytest", "tests/test_cassettes.py", "-m", "live", "-v", "-s"]

    try:
        subprocess.run(cmd, check=True)
    except subprocess.CalledProcessError as e:
        print(f"❌ Recording failed: {e}")
        return 1

    print()
    print("🎉 Recording completed!")

    cassettes = sorted(Path("tests/cassettes").glob("*.yaml"))
    if cassettes:
        print("📼 Created cassettes:")
        for cassette in cassettes:
            print(f"   - {cassette.name}")
    else:
        print("⚠️  No cassettes found")

    print()
    print("🧪 Now you can run replay tests:")
    print("   pytest tests/test_cassettes.py -v")
    return 0


if __name__ == "__main__":
    sys.exit(main())
