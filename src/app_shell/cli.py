import argparse
import logging
import sys
from pathlib import Path

from src.app_shell.config import validate_ops_rules
from src.app_shell.context import ServiceContext
from src.components.newsletter import parse_id
from src.core.entities import Editor, Newsletter, Post
from src.core.errors import NewsletterCoreError
from src.rules.loader import load_rules

logger = logging.getLogger("cli")

RULES_PATH = "rules.yaml"


def get_context(rules_path: Path) -> ServiceContext:
    if not rules_path.exists():
        logger.error("Rules file %s not found.", rules_path)
        sys.exit(1)

    rules = load_rules(rules_path)
    base_dir = rules_path.resolve().parent
    validate_ops_rules(rules, base_dir)
    return ServiceContext.create(rules, base_dir)


# --- Setup ---


def handle_migrate(ctx: ServiceContext, args: argparse.Namespace) -> None:
    applied = ctx.migrator.run_migrations()
    print(f"Applied {len(applied)} migration(s).")


def handle_add_editor(ctx: ServiceContext, args: argparse.Namespace) -> None:
    editor = ctx.editor_repo.save(Editor(auth_id=args.auth_id, email=args.email))
    print(f"Editor created: {editor.id}")


def handle_add_newsletter(ctx: ServiceContext, args: argparse.Namespace) -> None:
    editor = ctx.ownership.resolve_editor(args.caller)
    newsletter = ctx.newsletter_repo.save(
        Newsletter(editor_id=editor.id, name=args.name, description=args.description)
    )
    print(f"Newsletter created: {newsletter.id}")


def handle_add_post(ctx: ServiceContext, args: argparse.Namespace) -> None:
    _, newsletter = ctx.ownership.verify_newsletter_ownership(
        args.caller, parse_id(args.newsletter_id, "newsletter_id")
    )
    post = ctx.post_repo.save(
        Post(newsletter_id=newsletter.id, title=args.title, content=args.content)
    )
    print(f"Post created: {post.id}")


# --- Subscriber lifecycle ---


def handle_subscribe(ctx: ServiceContext, args: argparse.Namespace) -> None:
    subscriber = ctx.subscriptions.subscribe(args.email, args.newsletter_id)
    print(f"{subscriber.email}: {subscriber.status.value}")


def handle_confirm(ctx: ServiceContext, args: argparse.Namespace) -> None:
    subscriber = ctx.subscriptions.confirm(args.token)
    print(f"{subscriber.email}: {subscriber.status.value}")


def handle_unsubscribe(ctx: ServiceContext, args: argparse.Namespace) -> None:
    ctx.subscriptions.unsubscribe_by_token(args.token)
    print("Unsubscribed.")


def handle_subscribers(ctx: ServiceContext, args: argparse.Namespace) -> None:
    page, total = ctx.subscriptions.list_active_for_editor(
        args.caller, args.newsletter_id, args.limit, args.offset
    )
    for s in page:
        print(f"{s.email}\t{s.subscription_date.isoformat()}")
    print(f"{len(page)} of {total} active subscriber(s).")


# --- Publishing ---


def handle_publish(ctx: ServiceContext, args: argparse.Namespace) -> None:
    result = ctx.publisher.publish(args.post_id, args.caller)
    print(
        f"Post {result.post_id}: {result.status.value} "
        f"({result.sent} sent, {result.failed} failed, {result.skipped} skipped)"
    )
    for failure in result.failures:
        print(f"  failed: {failure.email}: {failure.error}")
    result.raise_for_failures()


HANDLERS = {
    "migrate": handle_migrate,
    "add-editor": handle_add_editor,
    "add-newsletter": handle_add_newsletter,
    "add-post": handle_add_post,
    "subscribe": handle_subscribe,
    "confirm": handle_confirm,
    "unsubscribe": handle_unsubscribe,
    "subscribers": handle_subscribers,
    "publish": handle_publish,
}


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Newsletter core CLI")
    parser.add_argument("--rules", default=RULES_PATH, help="Path to rules.yaml")
    subparsers = parser.add_subparsers(dest="command", required=True)

    # migrate
    subparsers.add_parser("migrate", help="Apply pending database migrations")

    # add-editor
    editor_parser = subparsers.add_parser("add-editor", help="Register an editor")
    editor_parser.add_argument("auth_id", help="Identity issued by the authenticator")
    editor_parser.add_argument("email")

    # add-newsletter
    nl_parser = subparsers.add_parser("add-newsletter", help="Create a newsletter")
    nl_parser.add_argument("name")
    nl_parser.add_argument("--description", default="")
    nl_parser.add_argument("--as", dest="caller", required=True, help="Editor auth id")

    # add-post
    post_parser = subparsers.add_parser("add-post", help="Create a draft post")
    post_parser.add_argument("newsletter_id")
    post_parser.add_argument("title")
    post_parser.add_argument("--content", required=True)
    post_parser.add_argument("--as", dest="caller", required=True, help="Editor auth id")

    # subscribe / confirm / unsubscribe
    sub_parser = subparsers.add_parser("subscribe", help="Subscribe an email address")
    sub_parser.add_argument("email")
    sub_parser.add_argument("newsletter_id")

    confirm_parser = subparsers.add_parser("confirm", help="Confirm a subscription")
    confirm_parser.add_argument("token")

    unsub_parser = subparsers.add_parser("unsubscribe", help="Unsubscribe by token")
    unsub_parser.add_argument("token")

    # subscribers
    list_parser = subparsers.add_parser("subscribers", help="List active subscribers")
    list_parser.add_argument("newsletter_id")
    list_parser.add_argument("--as", dest="caller", required=True, help="Editor auth id")
    list_parser.add_argument("--limit", type=int, default=0)
    list_parser.add_argument("--offset", type=int, default=0)

    # publish
    pub_parser = subparsers.add_parser("publish", help="Publish a post to its subscribers")
    pub_parser.add_argument("post_id")
    pub_parser.add_argument("--as", dest="caller", required=True, help="Editor auth id")

    return parser


def main(argv: list[str] | None = None) -> int:
    logging.basicConfig(level=logging.INFO)
    args = build_parser().parse_args(argv)

    ctx = get_context(Path(args.rules))

    try:
        HANDLERS[args.command](ctx, args)
    except NewsletterCoreError as e:
        logger.error("%s failed: [%s] %s", args.command, e.code, e.message)
        print(f"Error: {e.message}", file=sys.stderr)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
