# socialgraph/cli.py
import logging
from typing import Optional

import typer

from socialgraph.config import LOG_LEVEL
from socialgraph.db import engine, get_session
from socialgraph.errors import DomainError
from socialgraph.models import Base
from socialgraph.services import seeder
from socialgraph.services.discovery import DiscoveryFilters, discovery_engine
from socialgraph.services.feed import feed_engine
from socialgraph.services.relationships import relationship_service

app = typer.Typer(help="Social graph operator CLI")


@app.callback()
def main(verbose: bool = typer.Option(False, "--verbose", "-v", help="Log at DEBUG level")):
    logging.basicConfig(
        level="DEBUG" if verbose else LOG_LEVEL,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


@app.command("init-db")
def init_db_cmd():
    """Create every table and index (use alembic for managed databases)."""
    Base.metadata.create_all(engine)
    typer.echo(f"Created {len(Base.metadata.tables)} tables")


@app.command("seed")
def seed_cmd(
    profiles: int = typer.Option(200, help="Number of profiles", min=2),
    friendships: int = typer.Option(300, help="Friendships to attempt"),
    requests: int = typer.Option(100, help="Pending friend requests to attempt"),
    blocks: int = typer.Option(20, help="Blocks to attempt"),
    posts: int = typer.Option(1000, help="Number of posts"),
):
    """Populate the database with reproducible demo data."""
    seeder.seed_random_generators()

    with get_session() as db:
        ps = seeder.make_profiles(db, profiles)
        db.commit()
        made = seeder.make_relationships(db, ps, friendships, requests, blocks)
        created = seeder.make_posts(db, ps, posts)
        engagement = seeder.make_engagement(db, created)
    typer.echo(
        f"Seed complete: profiles={profiles}, friendships={made['friendships']}, "
        f"requests={made['requests']}, blocks={made['blocks']}, posts={posts}, "
        f"likes={engagement['likes']}, comments={engagement['comments']}"
    )


@app.command("discover")
def discover_cmd(
    user: int = typer.Option(..., "--user", "-u", help="Viewer user id", min=1),
    country: Optional[str] = typer.Option(None, help="Country filter"),
    spoken: Optional[str] = typer.Option(None, help="Spoken language filter"),
    learning: Optional[str] = typer.Option(None, help="Learning language filter"),
    search: Optional[str] = typer.Option(None, "--search", "-s", help="Name or handle substring"),
    limit: int = typer.Option(20, "--limit", "-l", help="Page size", min=1, max=100),
    cursor: Optional[str] = typer.Option(None, help="Cursor from a previous page"),
):
    """List discovery candidates for a user."""
    try:
        with get_session() as db:
            if search:
                page = discovery_engine.search_candidates(db, user, search, cursor, limit)
            else:
                filters = DiscoveryFilters(country_code=country, spoken_language=spoken, learning_language=learning)
                page = discovery_engine.find_candidates(db, user, filters, cursor, limit)

            if not page.items:
                typer.echo("No candidates found")
                return
            typer.echo(f"{'User':<7} {'Handle':<28} {'Age':<4} {'Country':<8} Last active")
            typer.echo("─" * 70)
            for c in page.items:
                typer.echo(
                    f"{c.user_id:<7} @{c.handle:<27} {c.age:<4} {c.country_code:<8} "
                    f"{c.last_active:%Y-%m-%d %H:%M}"
                )
            if page.next_cursor:
                typer.echo(f"\nNext cursor: {page.next_cursor}")
    except DomainError as e:
        typer.echo(f"Error: {e.message}", err=True)
        raise typer.Exit(1)


@app.command("feed")
def feed_cmd(
    user: int = typer.Option(..., "--user", "-u", help="Viewer user id", min=1),
    owner: Optional[int] = typer.Option(None, help="Only posts by this user"),
    limit: int = typer.Option(20, "--limit", "-l", help="Page size", min=1, max=100),
    cursor: Optional[str] = typer.Option(None, help="Cursor from a previous page"),
):
    """Show a user's feed with like and comment counts."""
    try:
        with get_session() as db:
            page = feed_engine.list_posts(db, user, owner, cursor, limit)
            if not page.items:
                typer.echo("No posts")
                return
            for p in page.items:
                flags = "".join(["*" if p.is_owner else " ", "♥" if p.is_liked else " "])
                author = p.author.handle or f"user {p.user_id}"
                typer.echo(f"[{p.id}] {flags} @{author} {p.created_at:%Y-%m-%d %H:%M}")
                typer.echo(f"    {p.content[:100]}")
                typer.echo(f"    likes={p.likes_count} comments={p.comments_count}")
            if page.next_cursor:
                typer.echo(f"\nNext cursor: {page.next_cursor}")
    except DomainError as e:
        typer.echo(f"Error: {e.message}", err=True)
        raise typer.Exit(1)


@app.command("relationship")
def relationship_cmd(
    user: int = typer.Option(..., "--user", "-u", help="Acting user id", min=1),
    other: Optional[int] = typer.Option(None, "--other", "-o", help="Other user id", min=1),
):
    """Show the relationship between two users, or a user's friends, requests and blocks."""
    try:
        with get_session() as db:
            if other is not None:
                state = relationship_service.status(db, user, other)
                typer.echo(f"{user} -> {other}: {state.value}")
                return
            friends = relationship_service.list_friends(db, user)
            incoming = relationship_service.list_incoming_requests(db, user)
            outgoing = relationship_service.list_outgoing_requests(db, user)
            blocked = relationship_service.list_blocked(db, user)
            typer.echo(f"Friends ({len(friends)}): {', '.join(map(str, friends)) or '-'}")
            typer.echo(f"Incoming requests ({len(incoming)}): {', '.join(str(r.sender_id) for r in incoming) or '-'}")
            typer.echo(f"Outgoing requests ({len(outgoing)}): {', '.join(str(r.receiver_id) for r in outgoing) or '-'}")
            typer.echo(f"Blocked ({len(blocked)}): {', '.join(map(str, blocked)) or '-'}")
    except DomainError as e:
        typer.echo(f"Error: {e.message}", err=True)
        raise typer.Exit(1)


if __name__ == "__main__":
    app()
