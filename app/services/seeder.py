from __future__ import annotations
import random
from datetime import datetime, timedelta
from typing import Sequence
from faker import Faker
from sqlalchemy.ext.asyncio import AsyncSession

from app.models import User, Post, Activity, Comment, Like, Bookmark, Follow

SEED = 1337

fake = Faker()


def seed_random_generators(seed: int = SEED) -> None:
    """Make seeding reproducible across runs."""
    random.seed(seed)
    Faker.seed(seed)
    fake.seed_instance(seed)
    fake.unique.clear()


async def make_users(db: AsyncSession, n_users: int) -> list[User]:
    users = [User(handle=fake.unique.user_name()) for _ in range(n_users)]
    db.add_all(users); await db.flush()
    return users


async def make_posts(db: AsyncSession, users: Sequence[User], n_posts: int) -> list[Post]:
    posts: list[Post] = []
    for _ in range(n_posts):
        u = random.choice(users)
        p = Post(
            author_id=u.id,
            title=fake.sentence(nb_words=6),
            content=fake.paragraph(nb_sentences=random.randint(3, 8)),
            published=random.random() > 0.05,
            created_at=fake.date_time_between(start_date="-60d", end_date="now"),
        )
        db.add(p); posts.append(p)
    await db.flush()
    return posts


async def make_activities(db: AsyncSession, users: Sequence[User], n_activities: int) -> list[Activity]:
    activities: list[Activity] = []
    for _ in range(n_activities):
        u = random.choice(users)
        a = Activity(
            author_id=u.id,
            content=fake.sentence(nb_words=random.randint(5, 25)),
            created_at=fake.date_time_between(start_date="-30d", end_date="now"),
        )
        db.add(a); activities.append(a)
    await db.flush()
    return activities


async def make_comment_tree(db: AsyncSession, target, users: Sequence[User],
                            max_roots=3, max_depth=3, max_children=3):
    """
    Generate a small random tree of comments for one post or activity.
    """
    target_field = "post_id" if isinstance(target, Post) else "activity_id"

    async def make_node(parent_id: str | None, depth: int, base: datetime):
        if depth > max_depth: return
        n_children = random.randint(0, max(0, max_children - depth + 1))
        for _ in range(n_children):
            u = random.choice(users)
            when = base + timedelta(minutes=random.randint(1, 10 * depth + 5))
            c = Comment(
                author_id=u.id, parent_id=parent_id, content=fake.sentence(),
                created_at=when, **{target_field: target.id},
            )
            db.add(c); await db.flush()
            await make_node(c.id, depth + 1, when)

    roots = random.randint(0, max_roots)
    for _ in range(roots):
        u = random.choice(users)
        when = target.created_at + timedelta(minutes=random.randint(1, 30))
        c = Comment(
            author_id=u.id, parent_id=None, content=fake.sentence(),
            created_at=when, **{target_field: target.id},
        )
        db.add(c); await db.flush()
        await make_node(c.id, 2, when)


async def make_comments(db: AsyncSession, targets: Sequence, users: Sequence[User], frac_with_threads=0.6):
    for t in targets:
        if random.random() < frac_with_threads:
            await make_comment_tree(db, t, users)


async def make_interactions(db: AsyncSession, posts: Sequence[Post], activities: Sequence[Activity],
                            users: Sequence[User]):
    """
    Scatter likes, bookmarks and follows. Each (user, target) pair is drawn at
    most once so the unique constraints hold.
    """
    for p in posts:
        for u in random.sample(list(users), k=random.randint(0, min(len(users), 40))):
            db.add(Like(author_id=u.id, post_id=p.id,
                        created_at=p.created_at + timedelta(minutes=random.randint(0, 1000))))
        for u in random.sample(list(users), k=random.randint(0, min(len(users), 8))):
            db.add(Bookmark(user_id=u.id, post_id=p.id,
                            created_at=p.created_at + timedelta(minutes=random.randint(0, 1000))))
    for a in activities:
        for u in random.sample(list(users), k=random.randint(0, min(len(users), 25))):
            db.add(Like(author_id=u.id, activity_id=a.id,
                        created_at=a.created_at + timedelta(minutes=random.randint(0, 600))))
    for u in users:
        others = [o for o in users if o.id != u.id]
        for o in random.sample(others, k=random.randint(0, min(len(others), 15))):
            db.add(Follow(follower_id=u.id, following_id=o.id,
                          created_at=fake.date_time_between(start_date="-90d", end_date="now")))
    await db.flush()
