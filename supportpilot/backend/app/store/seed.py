# supportpilot/backend/app/store/seed.py

from ..schemas.ticket import (
    TicketCategory,
    TicketChannel,
    TicketCreate,
    TicketEnvironment,
    TicketPriority,
)


def create_seed_ticket_input() -> TicketCreate:
    """Demo ticket shown when the workspace has no tickets yet."""
    return TicketCreate(
        title="Mobile checkout button not responding",
        category=TicketCategory.UI,
        priority=TicketPriority.HIGH,
        channel=TicketChannel.MOBILE,
        description=(
            "When I tap the checkout button on my phone, nothing happens and the "
            "cart stays on the same screen. I tried twice and the issue persists."
        ),
        steps_to_reproduce=(
            "1. Open the mobile app\n"
            "2. Add any product to the cart\n"
            "3. Tap the Checkout button on the cart screen"
        ),
        expected_result="The checkout flow opens and prompts for payment details.",
        actual_result="The button shows a brief highlight but no navigation occurs.",
        environment=TicketEnvironment(
            browser="Mobile Safari",
            os="iOS 17.2",
            device_type="Mobile",
            user_agent=(
                "Mozilla/5.0 (iPhone; CPU iPhone OS 17_2 like Mac OS X) "
                "AppleWebKit/605.1.15 (KHTML, like Gecko) Version/17.2 "
                "Mobile/15E148 Safari/604.1"
            ),
        ),
    )
