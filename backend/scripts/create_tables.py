import asyncio
from app.models.database import init_db
from app.models.translation_session import TranslationSession  # noqa: F401
from app.models.translation_log import TranslationLog  # noqa: F401
from app.models.audio_chunk import AudioChunk  # noqa: F401


async def create_tables():
    """Create all database tables"""
    print("Creating database tables...")
    print("Tables to create:")
    print("  - translation_sessions")
    print("  - translation_logs")
    print("  - audio_chunks")

    await init_db()

    print("✅ All tables created successfully!")
    print("\nDatabase schema ready for MeetingLingo Relay")


if __name__ == "__main__":
    asyncio.run(create_tables())
