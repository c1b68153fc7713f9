# app/cli.py
import asyncio

import typer

from app.config import COUNTER_VERIFY_LIMIT, configure_logging
from app.db import get_session
from app.services import seeder
from app.services.comments import comment_service
from app.services.counters import counter_auditor
from app.services.errors import InteractionError

app = typer.Typer(help="Social interactions CLI with subcommands")


@app.callback()
def main(verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging")):
    configure_logging("DEBUG" if verbose else "WARNING")


async def _seed(users: int, posts: int, activities: int) -> None:
    async with get_session() as db:
        us = await seeder.make_users(db, users)
        ps = await seeder.make_posts(db, us, posts)
        acts = await seeder.make_activities(db, us, activities)
        await seeder.make_comments(db, [*ps, *acts], us, frac_with_threads=0.6)
        await seeder.make_interactions(db, ps, acts, us)


@app.command("seed")
def seed_cmd(
    users: int = typer.Option(200, help="Number of users"),
    posts: int = typer.Option(1000, help="Number of posts"),
    activities: int = typer.Option(1000, help="Number of activities"),
):
    """Populate the database with mock data."""
    # Set deterministic seeds for reproducible data
    seeder.seed_random_generators()

    asyncio.run(_seed(users, posts, activities))
    typer.echo(f"Seed complete: users={users}, posts={posts}, activities={activities}")


@app.command("verify-counts")
def verify_counts_cmd(
    limit: int = typer.Option(
        COUNTER_VERIFY_LIMIT, "--limit", "-l", help="Number of recent activities to check", min=1
    ),
    fix: bool = typer.Option(False, "--fix", help="Repair drifted counters"),
):
    """Compare activity like/comment counters with live counts."""
    try:
        result = asyncio.run(counter_auditor.verify(limit=limit))
    except Exception as e:
        typer.echo(f"❌ Error verifying counters: {e}", err=True)
        raise typer.Exit(1)

    typer.echo(f"\n📊 Checked {result.total_checked:,} activities")
    typer.echo("─" * 60)
    if not result.has_issues:
        typer.echo("✓ All counters consistent")
        return

    typer.echo(f"{'Activity':<34} {'Field':<16} {'Stored':<8} {'Live':<8}")
    for m in result.mismatches:
        typer.echo(f"{m.activity_id:<34} {m.field:<16} {m.actual:<8,} {m.expected:<8,}")
    typer.echo("─" * 60)
    typer.echo(f"Mismatches: {len(result.mismatches)}")

    if fix:
        fixed = asyncio.run(counter_auditor.repair(result.mismatches))
        typer.echo(f"✓ Repaired {fixed} counter row(s)")
    else:
        typer.echo("Run with --fix (or repair-counts) to repair")
        raise typer.Exit(2)


@app.command("repair-counts")
def repair_counts_cmd(
    limit: int = typer.Option(COUNTER_VERIFY_LIMIT, "--limit", "-l", min=1),
):
    """Verify counters and repair every mismatch found."""
    try:
        summary = asyncio.run(counter_auditor.verify_and_repair(limit=limit, auto_fix=True))
    except Exception as e:
        typer.echo(f"❌ Error repairing counters: {e}", err=True)
        raise typer.Exit(1)
    typer.echo(
        f"Checked {summary['total_checked']:,}, mismatches {summary['mismatches']}, fixed {summary['fixed']}"
    )


@app.command("comment-count")
def comment_count_cmd(
    target_type: str = typer.Argument(..., help="Target type: 'post' or 'activity'"),
    target_id: str = typer.Argument(..., help="Target id"),
):
    """Show the exposed comment count of a post or activity."""
    try:
        count = asyncio.run(comment_service.count(target_type, target_id))
    except InteractionError as e:
        typer.echo(f"❌ {e.code}: {e.message}", err=True)
        raise typer.Exit(1)
    typer.echo(f"💬 {target_type} {target_id}: {count:,} comments")


if __name__ == "__main__":
    app()
