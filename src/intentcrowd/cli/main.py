"""intentcrowd CLI - main entry point."""

from typing import Optional

import click
import httpx

from .ui import (
    console,
    items_table,
    print_error,
    print_info,
    print_success,
    print_warning,
    render_item,
    setup_logging,
)
from ..classifier.model import IntentClassifier
from ..config import Config, CONFIG_FILE
from ..storage.audit import AuditAction
from ..storage.database import TrainingStore
from ..storage.models import ItemStatus
from ..training.consensus import ConsensusEvaluator
from ..training.intake import UtteranceIntake
from ..training.sampler import TrainingSampler
from ..training.submission import SubmissionHandler


def _open_store(config: Config) -> TrainingStore:
    return TrainingStore(config.resolve_db_path(), default_max_assignments=config.max_assignments)


def _load_classifier(config: Config, store: TrainingStore) -> IntentClassifier:
    path = config.resolve_model_path()
    classifier = IntentClassifier.load(path)
    store.audit.log(AuditAction.MODEL_LOAD, {"path": path})
    return classifier


def _save_classifier(config: Config, store: TrainingStore, classifier: IntentClassifier):
    path = config.resolve_model_path()
    classifier.save(path)
    store.audit.log(AuditAction.MODEL_SAVE, {"path": path})


def _api_url(config: Config) -> str:
    return f"http://{config.host}:{config.port}/api/sentence.json"


def _put_submission(config: Config, item_id: int, label: str) -> httpx.Response:
    """Hand a submission to the running server."""
    return httpx.put(_api_url(config), json={"ID": item_id, "Sentence": label}, timeout=30.0)


def _error_message(response: httpx.Response) -> str:
    try:
        return response.json()["Msg"]
    except (ValueError, KeyError, TypeError):
        return response.text or f"HTTP {response.status_code}"


def _print_accepted(item_id: int, status: str, label: Optional[str] = None):
    if label:
        print_success(f"Submission accepted. Item {item_id} is {status}: {label}")
    else:
        print_success(f"Submission accepted. Item {item_id} is {status}.")


@click.group()
@click.version_option(package_name="intentcrowd")
@click.option(
    "--log-level",
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR"], case_sensitive=False),
    default="WARNING",
    help="Logging verbosity",
)
@click.pass_context
def cli(ctx: click.Context, log_level: str):
    """intentcrowd - crowd-trained intent classification."""
    setup_logging(log_level)
    ctx.obj = Config.load()


@cli.command()
@click.option("--host", help="Bind address (default from config)")
@click.option("--port", type=int, help="Port (default from config)")
@click.pass_obj
def serve(config: Config, host: str, port: int):
    """Run the HTTP API.

    Examples:

        intentcrowd serve

        intentcrowd serve --host 0.0.0.0 --port 8080
    """
    import uvicorn

    from ..api.app import create_app

    app = create_app(config)
    print_info(f"Serving on http://{host or config.host}:{port or config.port}")
    uvicorn.run(app, host=host or config.host, port=port or config.port)


@cli.command()
@click.argument("sentence")
@click.option("--foreign-id", "-f", default="", help="Reference to the originating context")
@click.option("--max-assignments", "-m", type=int, help="Rater quota (default from config)")
@click.pass_obj
def add(config: Config, sentence: str, foreign_id: str, max_assignments: int):
    """Queue SENTENCE for raters.

    Examples:

        intentcrowd add "find me a taco place nearby"

        intentcrowd add "cancel my 5pm" --foreign-id sms-881 -m 5
    """
    store = _open_store(config)
    try:
        item = store.create_item(sentence, foreign_id=foreign_id, max_assignments=max_assignments)
    except ValueError as e:
        print_error(str(e))
        raise SystemExit(1)

    print_success(f"Queued training item {item.id} ({item.max_assignments} raters)")


@cli.command()
@click.option("--id", "item_id", type=int, help="Only consider this item")
@click.pass_obj
def sample(config: Config, item_id: int):
    """Show a random item that still needs raters."""
    store = _open_store(config)
    item = TrainingSampler(store).sample(filter_id=item_id)

    if item is None:
        print_warning("No training items need raters.")
        return

    console.print(render_item(item))


@cli.command()
@click.argument("item_id", type=int)
@click.argument("label")
@click.pass_obj
def submit(config: Config, item_id: int, label: str):
    """Submit LABEL for training item ITEM_ID.

    Examples:

        intentcrowd submit 4 book_flight
    """
    store = _open_store(config)

    # A running server owns the model file and overwrites it at shutdown
    try:
        response = _put_submission(config, item_id, label)
    except httpx.ConnectError:
        response = None

    if response is not None:
        if response.status_code != 200:
            print_error(_error_message(response))
            raise SystemExit(1)
        item = store.get_item(item_id)
        if item is None:
            # Server runs on another database
            print_success(f"Submission accepted by {_api_url(config)}")
        else:
            _print_accepted(item_id, item.status.value, item.resolved_label)
        return

    print_info(f"No server at {_api_url(config)}, updating the model file directly")

    classifier = _load_classifier(config, store)
    evaluator = ConsensusEvaluator(store, classifier, promotion_weight=config.promotion_weight)
    handler = SubmissionHandler(store, classifier, evaluator)

    result = handler.submit(item_id, label)

    # Rejected submissions still trained the model unless the item was unknown
    _save_classifier(config, store, classifier)

    if not result.accepted:
        print_error(result.message)
        raise SystemExit(1)

    _print_accepted(item_id, result.outcome.status.value, result.outcome.label)


@cli.command()
@click.argument("text")
@click.option("--queue", is_flag=True, help="Queue for raters if confidence is low")
@click.option("--foreign-id", "-f", default="", help="Reference used when queueing")
@click.pass_obj
def classify(config: Config, text: str, queue: bool, foreign_id: str):
    """Classify TEXT with the current model.

    Examples:

        intentcrowd classify "book a flight to denver"

        intentcrowd classify "book a flight to denver" --queue -f sms-881
    """
    store = _open_store(config)
    classifier = _load_classifier(config, store)

    if queue:
        result = UtteranceIntake(classifier, store, threshold=config.confidence_threshold).handle(
            text, foreign_id=foreign_id
        )
        label, confidence = result.label, result.confidence
    else:
        result = None
        prediction = classifier.classify(text)
        label, confidence = prediction.label, prediction.confidence

    if label is None:
        print_warning("Model is untrained.")
    else:
        console.print(f"\n  Label:       [bold]{label}[/bold]")
        console.print(f"  Confidence:  {confidence:.2f}\n")

    if result is not None and result.queued:
        print_info(f"Low confidence - queued as training item {result.queued_item.id}")


@cli.command()
@click.option(
    "--status",
    type=click.Choice([s.value for s in ItemStatus]),
    default=ItemStatus.CONFLICTED.value,
    help="Which items to list",
)
@click.option("--id", "item_id", type=int, help="Show one item with its submissions")
@click.option("--limit", "-n", type=int, default=50, help="Maximum items to list")
@click.pass_obj
def review(config: Config, status: str, item_id: int, limit: int):
    """List items for manual review (conflicted by default).

    Examples:

        intentcrowd review

        intentcrowd review --status resolved -n 20

        intentcrowd review --id 4
    """
    store = _open_store(config)

    if item_id is not None:
        item = store.get_item(item_id)
        if item is None:
            print_error(f"Training item not found: {item_id}")
            raise SystemExit(1)
        console.print(render_item(item, store.get_submissions(item_id)))
        return

    items = store.list_items(status=ItemStatus(status), limit=limit)
    if not items:
        print_info(f"No {status} training items.")
        return

    console.print(f"\n[bold]{status.capitalize()} Training Items[/bold]\n")
    console.print(items_table(items))


@cli.command()
@click.pass_obj
def stats(config: Config):
    """Show training statistics."""
    store = _open_store(config)
    classifier = _load_classifier(config, store)

    db_stats = store.get_stats()
    audit_stats = store.audit.get_stats()

    console.print("\n[bold]Training Items[/bold]\n")
    console.print(f"  Items:          {db_stats['items']:>6,}")
    console.print(f"  Need raters:    {db_stats['eligible']:>6,}")
    console.print(f"  Submissions:    {db_stats['submissions']:>6,}")

    if db_stats["by_status"]:
        console.print("\n[bold]By Status:[/bold]")
        for status, count in sorted(db_stats["by_status"].items()):
            console.print(f"  {status:<20} {count:>6,}")

    console.print("\n[bold]Model[/bold]\n")
    console.print(f"  Labels:         {len(classifier.labels):>6,}")
    console.print(f"  Examples:       {classifier.total_examples:>6,}")
    console.print(f"  Vocabulary:     {classifier.vocabulary_size:>6,}")

    console.print("\n[bold]Audit Log:[/bold]")
    console.print(f"  Total entries:  {audit_stats['total_entries']:>6,}")


@cli.group()
def config():
    """Manage intentcrowd configuration."""
    pass


@config.command("show")
@click.pass_obj
def config_show(cfg: Config):
    """Show current configuration."""
    console.print("\n[bold]intentcrowd Configuration[/bold]\n")

    for key, value in cfg.to_dict().items():
        display = value if value is not None else "[dim](default)[/dim]"
        console.print(f"  {key:<22} {display}")

    console.print(f"\n  {'database':<22} [dim]{cfg.resolve_db_path()}[/dim]")
    console.print(f"  {'model':<22} [dim]{cfg.resolve_model_path()}[/dim]")
    console.print(f"\n[dim]Config file: {CONFIG_FILE}[/dim]")


@config.command("set")
@click.argument("key")
@click.argument("value")
@click.pass_obj
def config_set(cfg: Config, key: str, value: str):
    """Set a configuration value.

    Keys:

        db_path               SQLite database file
        model_path            Saved model file
        max_assignments       Raters per training item
        confidence_threshold  Below this, utterances are queued for raters
        promotion_weight      Extra weight for consensus labels
        host, port            HTTP bind address

    Examples:

        intentcrowd config set max_assignments 5

        intentcrowd config set confidence_threshold 0.6
    """
    try:
        cfg.set(key, value)
    except KeyError:
        print_error(f"Unknown key: {key}")
        console.print("\nValid keys: " + ", ".join(cfg.to_dict()))
        raise SystemExit(1)
    except ValueError as e:
        print_error(str(e))
        raise SystemExit(1)

    cfg.save()
    print_success(f"{key} set to {value}")


def main():
    cli()


if __name__ == "__main__":
    main()
