#!/usr/bin/env python3
"""
Setup Verification Script

Validates configuration and the Google Calendar connection before running
the application. Run this after setting up your .env file.

Usage:
    python scripts/verify_setup.py
"""

import asyncio
import os
import sys
from datetime import timedelta
from pathlib import Path

# Add project root to path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

# Load environment variables
from dotenv import load_dotenv
load_dotenv()


def print_header(title: str) -> None:
    """Print section header."""
    print(f"\n{'='*60}")
    print(f" {title}")
    print(f"{'='*60}")


def print_result(name: str, success: bool, message: str = "") -> None:
    """Print check result."""
    status = "[PASS]" if success else "[FAIL]"
    color = "\033[92m" if success else "\033[91m"
    reset = "\033[0m"
    msg = f" - {message}" if message else ""
    print(f"  {color}{status}{reset} {name}{msg}")


def check_env_file() -> bool:
    """Check if .env file exists."""
    env_path = project_root / ".env"
    exists = env_path.exists()
    if not exists:
        print_result(".env file", False, "File not found (environment variables only)")
    else:
        print_result(".env file", True, "Found")
    return exists


def check_calendar_vars() -> dict[str, bool]:
    """Check calendar id and service-account credentials."""
    results = {}

    calendar_id = os.getenv("GOOGLE_CALENDAR_ID") or os.getenv("CALENDAR_ID", "")
    if calendar_id:
        print_result("GOOGLE_CALENDAR_ID", True, f"Set ({calendar_id})")
    else:
        print_result("GOOGLE_CALENDAR_ID", False, "Not set - required for bookings")
    results["calendar_id"] = bool(calendar_id)

    try:
        from app.config import get_settings
        from app.core.scheduling.calendar_client import CalendarConfigError, load_service_account_info

        info = load_service_account_info(get_settings())
        print_result("Service account", True, f"Set ({info['client_email']})")
        results["credentials"] = True
    except CalendarConfigError as e:
        print_result("Service account", False, str(e))
        results["credentials"] = False

    return results


def check_optional_vars() -> None:
    """Check optional environment variables."""
    optional = [
        ("APP_ENV", "development"),
        ("DEBUG", "false"),
        ("PORT", "3000"),
        ("CLINIC_TIMEZONE", "America/Sao_Paulo"),
        ("CLINIC_NAME", "Clínica de Urologia"),
        ("CLINIC_ADDRESS", "Endereço não configurado"),
        ("CLINIC_PHONE", ""),
        ("ACCEPT_HEALTH_PLANS", "true"),
    ]

    for var, default in optional:
        value = os.getenv(var, default)
        print_result(var, True, f"{value}")


async def check_calendar() -> bool:
    """Run a free/busy query for the next hour."""
    try:
        from app.config import get_settings
        from app.core.scheduling.calendar_client import GoogleCalendarClient
        from app.core.scheduling.slots import clinic_now

        settings = get_settings()
        client = GoogleCalendarClient()
        now = clinic_now()
        try:
            busy = await client.query_free_busy(
                settings.google_calendar_id, now, now + timedelta(hours=1)
            )
        finally:
            await client.close()

        print_result("Google Calendar", True, f"Free/busy OK ({len(busy)} busy interval(s) next hour)")
        return True

    except Exception as e:
        print_result("Google Calendar", False, str(e)[:80])
        return False


async def check_anthropic() -> bool:
    """Verify Anthropic API key works (optional rewrite pass)."""
    api_key = os.getenv("ANTHROPIC_API_KEY", "")

    if not api_key:
        print_result("Anthropic API", True, "Not configured - messages sent as written")
        return True

    try:
        from app.infra.claude import ClaudeClient

        client = ClaudeClient(api_key=api_key)
        await client.rewrite("Oi", system_prompt="Responda apenas: ok", max_tokens=10)
        await client.close()

        print_result("Anthropic API", True, "Key validated successfully")
        return True

    except Exception as e:
        print_result("Anthropic API", False, str(e)[:80])
        return False


def check_dependencies() -> bool:
    """Check if required Python packages are installed."""
    required_packages = [
        "fastapi",
        "uvicorn",
        "pydantic",
        "pydantic_settings",
        "httpx",
        "google.auth",
        "twilio",
        "anthropic",
        "multipart",
    ]

    missing = []
    for package in required_packages:
        try:
            __import__(package.replace("-", "_"))
        except ImportError:
            missing.append(package)

    if missing:
        print_result("Python packages", False, f"Missing: {', '.join(missing)}")
        return False
    else:
        print_result("Python packages", True, "All required packages installed")
        return True


async def main():
    """Run all verification checks."""
    print("\n" + "="*60)
    print(" Clinic WhatsApp Scheduling - Setup Verification")
    print("="*60)

    all_passed = True
    critical_failed = False

    print_header("Environment File")
    check_env_file()  # Non-critical

    print_header("Python Dependencies")
    if not check_dependencies():
        all_passed = False
        critical_failed = True

    print_header("Google Calendar Configuration")
    var_results = check_calendar_vars()
    if not all(var_results.values()):
        all_passed = False
        critical_failed = True

    print_header("Optional Environment Variables")
    check_optional_vars()

    print_header("Service Connections")

    if all(var_results.values()):
        if not await check_calendar():
            all_passed = False
            critical_failed = True
    else:
        print_result("Google Calendar", False, "Skipped - configuration incomplete")

    if not await check_anthropic():
        all_passed = False

    # Summary
    print_header("Summary")

    if critical_failed:
        print("\n  \033[91mCRITICAL: Some required checks failed.\033[0m")
        print("  Please fix the issues above before running the application.")
        print("\n  Quick fixes:")
        if not var_results.get("credentials"):
            print("  1. Create a service account with Calendar access and share the calendar with it")
            print("     Add to .env: GOOGLE_CREDENTIALS='{...service account json...}'")
        print()
        return 1
    elif not all_passed:
        print("\n  \033[93mWARNING: Some optional checks failed.\033[0m")
        print("  The application will run; outgoing messages are sent as written.")
        print()
        return 0
    else:
        print("\n  \033[92mAll checks passed!\033[0m")
        print("  You can start the application with:")
        print("    uvicorn app.main:app --reload --port 3000")
        print()
        return 0


if __name__ == "__main__":
    exit_code = asyncio.run(main())
    sys.exit(exit_code)
