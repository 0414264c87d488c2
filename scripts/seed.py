"""Development data seeder for the articles service."""
import asyncio
import argparse
import random
import time
from datetime import datetime, timezone, timedelta

from app.database import async_session, reset_schema
from app.models import Article, Comment, Tag, User
from app.services.tag_service import slugify

TAGS = ["Python", "FastAPI", "PostgreSQL", "Redis", "Docker", "Testing",
        "Performance", "Security", "Deployment", "Question"]


async def seed(small: bool = False):
    num_users = 5 if small else 20
    num_articles = 30 if small else 500
    max_comments = 3 if small else 8

    print(f"Seeding: {num_users} users, {num_articles} articles, up to {max_comments} comments each")
    start = time.perf_counter()

    await reset_schema()

    async with async_session() as session:
        tags = [Tag(name=name, slug=slugify(name)) for name in TAGS]
        session.add_all(tags)

        users = [
            User(
                username=f"user_{i:03d}",
                email=f"user_{i:03d}@example.com",
                display_name=f"User {i}",
                is_admin=(i == 0),
            )
            for i in range(num_users)
        ]
        session.add_all(users)
        await session.flush()
        print(f"  Created {len(tags)} tags, {len(users)} users (user_000 is admin)")

        total_comments = 0
        for i in range(num_articles):
            created = datetime.now(timezone.utc) - timedelta(days=random.randint(0, 365))
            article = Article(
                title=f"Question {i}: configuring {random.choice(TAGS)}",
                content=f"Body of article {i}. " * 10,
                pin=random.random() < 0.05,
                notification=random.random() < 0.5,
                view_count=random.randint(0, 500),
                created_at=created,
                user_id=random.choice(users).id,
            )
            article.tags = random.sample(tags, k=random.randint(1, 3))
            session.add(article)
            await session.flush()

            comments = []
            for _ in range(random.randint(0, max_comments)):
                parent = random.choice(comments) if comments and random.random() < 0.3 else None
                comment = Comment(
                    content=f"Reply from {random.choice(users).username}.",
                    article_id=article.id,
                    parent_id=parent.id if parent else None,
                    user_id=random.choice(users).id,
                )
                session.add(comment)
                await session.flush()
                comments.append(comment)
            total_comments += len(comments)

            # Roughly a third of the threads get an accepted answer.
            if comments and random.random() < 0.33:
                article.solution_id = random.choice(comments).id

        await session.commit()

    elapsed = time.perf_counter() - start
    print(f"\nSeeding complete in {elapsed:.1f}s")
    print(f"  Articles: {num_articles}")
    print(f"  Comments: {total_comments}")


def main():
    parser = argparse.ArgumentParser(description="Seed the articles database")
    parser.add_argument("--small", action="store_true", help="Use a small dataset (30 articles)")
    args = parser.parse_args()
    asyncio.run(seed(small=args.small))


if __name__ == "__main__":
    main()
