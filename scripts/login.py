#!/usr/bin/env python3
"""
Login to Instagram and save the browser session for PostVault.

Opens a visible Chromium window on the Instagram login page. Log in by
hand (including any 2FA prompt), then press Enter here. The cookies are
saved as a Playwright storage-state file that PostVault reuses for both
the browser and its API requests. Your password is never stored.
"""

import asyncio
import sys
from pathlib import Path

from playwright.async_api import async_playwright

# Add parent directory to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from postvault.core.exceptions import AuthExpiredError
from postvault.core.session import load_storage_cookies
from postvault.utils.config import INSTAGRAM_BASE_URL, STORAGE_STATE_FILE


async def login(state_file: Path = STORAGE_STATE_FILE) -> None:
    """Open a browser, wait for a manual login and save the session."""
    print("\n" + "=" * 60)
    print("PostVault - Instagram Login")
    print("=" * 60)
    print("\nLog in using the browser window that opens.")
    print("Your password is NOT saved - only the session cookies.")
    print("\n" + "=" * 60 + "\n")

    state_file.parent.mkdir(parents=True, exist_ok=True)

    async with async_playwright() as p:
        browser = await p.chromium.launch(headless=False)
        try:
            context = await browser.new_context()
            page = await context.new_page()
            await page.goto(f"{INSTAGRAM_BASE_URL}/accounts/login/")

            await asyncio.get_running_loop().run_in_executor(
                None, input, "Press Enter once you are logged in and see your feed... "
            )

            await context.storage_state(path=str(state_file))
        finally:
            await browser.close()

    try:
        cookies = load_storage_cookies(state_file)
    except AuthExpiredError as e:
        print(f"\n❌ ERROR: {e}")
        print("   Make sure the login finished before pressing Enter.")
        sys.exit(1)

    print(f"\n✅ SUCCESS! Session saved to: {state_file} ({len(cookies)} cookies)")
    print("\n📝 PostVault will now use this session automatically.\n")


if __name__ == "__main__":
    asyncio.run(login())
