"""Example usage of BusTracker."""

import asyncio
import logging
import sys
from pathlib import Path

# Add src to path so we can import bustrack
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from bustrack.models import Direction
from bustrack.tracker import BusTracker

# Set up logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)

logger = logging.getLogger(__name__)


async def print_line_status(tracker: BusTracker, line: str):
    """
    Fetch live positions and display every bus of one line.

    Args:
        tracker: Tracker with its GTFS source configured.
        line: Line code (e.g., "205" or "500")
    """
    print(f"\n{'='*70}")
    print(f"Line: {line}")
    print(f"{'='*70}\n")

    await tracker.refresh_positions()
    vehicles = [v for v in tracker.positions if v.line.casefold() == line.casefold()]
    if not vehicles:
        print("  No buses on this line right now")
        return

    for vehicle in vehicles:
        status = await tracker.track_vehicle(vehicle)
        towards = "outbound" if status.direction == Direction.OUTBOUND else "inbound"
        trip = status.active_trip
        print(f"Bus {vehicle.id} ({towards}) → {trip.headsign if trip else 'unknown destination'}")
        if status.next_stop:
            print(f"  Next stop: {status.next_stop.name}")
        if status.delay:
            line_text = f"  {status.delay.status.value}: scheduled {status.delay.scheduled_time}"
            if status.delay.delay_minutes:
                line_text += f", expected {status.delay.estimated_time} ({status.delay.delay_minutes} min late)"
            print(line_text)


async def interactive_mode(tracker: BusTracker):
    """
    Run in interactive mode, allowing user to query multiple lines.
    """
    print("Bus Tracker - Interactive Mode")
    print("Enter a line code or a stop name to see the buses")
    print("(Type 'quit' to exit)\n")

    loop = asyncio.get_running_loop()
    while True:
        user_input = (await loop.run_in_executor(None, input, "Enter line (or 'quit'): ")).strip()

        if user_input.lower() in ["quit", "q", "exit"]:
            print("Goodbye!")
            break

        if not user_input:
            continue

        matching = await tracker.search_routes(user_input)
        if not matching:
            print(f"No line matches {user_input!r}")
            continue

        if matching[0].short_name.casefold() != user_input.casefold():
            print("\nDid you mean:")
            for route in matching[:5]:
                print(f"  - {route.short_name}: {route.long_name}")
            continue

        await print_line_status(tracker, matching[0].short_name)


async def main():
    tracker = BusTracker()
    try:
        if len(sys.argv) > 1:
            # Command line mode: pass line code as argument
            await print_line_status(tracker, sys.argv[1])
        else:
            await interactive_mode(tracker)
    except KeyboardInterrupt:
        print("\n\nGoodbye!")
    except Exception as e:
        logger.error(f"Failed to fetch data: {e}", exc_info=True)
        sys.exit(1)
    finally:
        tracker.cleanup()


if __name__ == "__main__":
    asyncio.run(main())
