"""Interactive CLI simulator — walk through the OTP flow without a phone."""

import asyncio

from phone_verify.config import settings
from phone_verify.database.engine import async_session_factory, init_db
from phone_verify.dependencies import build_services
from phone_verify.errors import Failure
from phone_verify.services.background import background_tasks
from phone_verify.services.dispatcher import TwilioDispatcher

BLUE = "\033[94m"
GREEN = "\033[92m"
YELLOW = "\033[93m"
RED = "\033[91m"
DIM = "\033[2m"
BOLD = "\033[1m"
RESET = "\033[0m"


async def main() -> None:
    print(f"\n{BOLD}{'=' * 52}")
    print("  📱  Phone Verify — OTP Simulator")
    print(f"{'=' * 52}{RESET}\n")

    await init_db()

    # No Twilio credentials and test mode on: codes are printed, never sent.
    config = settings.model_copy(
        update={"otp_test_mode": True, "jwt_secret": settings.jwt_secret or "simulator-secret"}
    )
    services = build_services(
        async_session_factory,
        config,
        dispatcher=TwilioDispatcher(account_sid="", auth_token="", from_number=""),
    )

    print(f"{DIM}Type 'quit' to exit, 'resend' to request a new code{RESET}\n")
    phone = input(f"{YELLOW}Phone number (E.164): {RESET}").strip() or "+2348100000000"

    session_id = None
    while True:
        if session_id is None:
            issued = await services.otp.issue(phone)
            if isinstance(issued, Failure):
                print(f"{RED}{issued.code}: {issued.message}{RESET}\n")
                break
            session_id = issued.session_id
            print(f"{GREEN}{BOLD}Server:{RESET} {issued.message} (session {session_id})")
            print(f"{DIM}Test code: {issued.test_code}{RESET}\n")

        try:
            user_input = input(f"{BLUE}{BOLD}Code:{RESET} ").strip()
        except (KeyboardInterrupt, EOFError):
            print(f"\n{DIM}Goodbye!{RESET}")
            break

        if user_input.lower() == "quit":
            print(f"{DIM}Goodbye!{RESET}")
            break
        if user_input.lower() == "resend":
            session_id = None
            continue

        result = await services.otp.verify(session_id, user_input, phone)
        if isinstance(result, Failure):
            print(f"{RED}{result.code}:{RESET} {result.message}\n")
            continue

        kind = "new" if result.is_new_account else "existing"
        print(f"{GREEN}{BOLD}Server:{RESET} {result.message} ({kind} account {result.account_id})\n")
        break

    await background_tasks.drain()


if __name__ == "__main__":
    asyncio.run(main())
