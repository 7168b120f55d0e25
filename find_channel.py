"""
Look up YouTube channel IDs by name or @handle, for use with /add.
Only YOUTUBE_API_KEY is needed; the bot token is not read.

Usage: python find_channel.py <channel-name-or-@handle>
"""
import asyncio
import os
import sys

from dotenv import load_dotenv

from youtube import ApiKeyMissingError, TransportError, YouTubeClient


async def _find(query: str) -> int:
    client = YouTubeClient(os.getenv("YOUTUBE_API_KEY", ""))
    try:
        matches = await client.search_channels(query)
    except ApiKeyMissingError:
        print("Error: YOUTUBE_API_KEY is not set in .env file")
        return 1
    except TransportError as exc:
        print(f"Error: {exc}")
        return 1

    if not matches:
        print("No channels found with that name. Try a different query.")
        return 0

    print("\nPotential matching channels:")
    for i, m in enumerate(matches, 1):
        print(f"{i}. Channel name: {m.name}")
        print(f"   Channel ID: {m.channel_id}")
        print(f"   Description: {m.description}")
        print("---")
    print("\nTo follow one of them, send the bot:")
    print("/add <CHANNEL_ID>")
    return 0


def main() -> None:
    if len(sys.argv) < 2:
        print("Usage: python find_channel.py <channel-name-or-@handle>")
        print("Example: python find_channel.py @ExampleChannel")
        sys.exit(1)
    load_dotenv()
    sys.exit(asyncio.run(_find(" ".join(sys.argv[1:]))))


if __name__ == "__main__":
    main()
