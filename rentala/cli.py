"""
Rentala CLI - Command line interface for running jobs.

Usage:
    rentala --help              Show all commands
    rentala reports             Run one due-report scan
    rentala sweep               Run the notification sweep once
    rentala test-email          Send a sample report email to DEV_EMAIL
    rentala test-sms            Send a sample SMS to DEV_PHONE
"""

import asyncio
from datetime import date

import typer

app = typer.Typer(
    name="rentala",
    help="Rentala CLI - Job runner for scheduled reports and tenant notifications",
    no_args_is_help=True,
)

_verbose = False


@app.callback()
def main(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Log at DEBUG level"),
):
    """Rentala job runner."""
    global _verbose
    _verbose = verbose


def _print_success(message: str) -> None:
    typer.echo(f"  ✅ {message}")


def _print_error(message: str) -> None:
    """Print an error message to stderr."""
    typer.echo(f"❌ {message}", err=True)


@app.command()
def reports():
    """Render and email every report schedule that is due."""
    from rentala.core.logging import setup_logging
    from rentala.jobs.reports import main

    setup_logging(debug=_verbose or None)
    stats = asyncio.run(main())
    typer.echo(
        f"\nDue: {stats['due']}  claimed: {stats['claimed']}  "
        f"succeeded: {stats['succeeded']}  failed: {stats['failed']}  skipped: {stats['skipped']}"
    )


@app.command()
def sweep():
    """Run the overdue rent and lease expiration checks once."""
    from rentala.core.logging import setup_logging
    from rentala.jobs.notifications import main

    setup_logging(debug=_verbose or None)
    results = asyncio.run(main())
    for kind, counts in results.items():
        typer.echo(
            f"\n{kind}: matched {counts['matched']}, "
            f"emails {counts['emails_sent']}, sms {counts['sms_sent']}"
        )


@app.command()
def test_email():
    """Send a sample satisfaction report email to DEV_EMAIL."""
    from rentala.config import get_settings
    from rentala.core.logging import setup_logging
    from rentala.services.email_service import EmailChannel, scheduled_report_email
    from rentala.services.report_data import PeriodRow
    from rentala.services.report_pdf import ALL_METRICS, render_satisfaction_report

    setup_logging(debug=_verbose or None)
    settings = get_settings()
    if not settings.dev_email:
        _print_error("DEV_EMAIL not set")
        raise typer.Exit(1)

    rows = [
        PeriodRow(
            month=date(2026, month, 1),
            average_satisfaction=4.2,
            average_cleanliness=4.0,
            average_maintenance=3.8,
            average_communication=4.5,
            average_responsiveness=4.1,
            average_value_for_money=3.9,
            survey_count=12,
            recommend_percentage=83,
        )
        for month in (7, 8, 9)
    ]
    pdf_bytes = render_satisfaction_report(
        "Sample Property", rows, ALL_METRICS, months=len(rows)
    )
    message = scheduled_report_email(
        "Sample schedule", "Sample Property", "monthly", pdf_bytes, "satisfaction-report-sample.pdf"
    )

    typer.echo("\n📧 Sending test report email...")
    if asyncio.run(EmailChannel(settings).send(settings.dev_email, message)):
        _print_success(f"Report email sent to {settings.dev_email}")
    else:
        _print_error("Report email failed")
        raise typer.Exit(1)


@app.command()
def test_sms():
    """Send a sample overdue rent SMS to DEV_PHONE."""
    from rentala.config import get_config, get_settings
    from rentala.core.errors import RecipientValidationError
    from rentala.core.logging import setup_logging
    from rentala.services.sms_service import SmsChannel, overdue_rent_sms

    setup_logging(debug=_verbose or None)
    settings = get_settings()
    if not settings.dev_phone:
        _print_error("DEV_PHONE not set")
        raise typer.Exit(1)

    channel = SmsChannel(settings)
    try:
        target = channel.prepare_target(settings.dev_phone)
    except RecipientValidationError as e:
        _print_error(str(e))
        raise typer.Exit(1) from e

    message = overdue_rent_sms(
        "Thandi", "Sample Property", 8500, 3, get_config().notifications.currency_symbol
    )

    typer.echo("\n📱 Sending test SMS...")
    if asyncio.run(channel.send(target, message)):
        _print_success(f"SMS sent to {target}")
    else:
        _print_error("SMS failed")
        raise typer.Exit(1)


@app.command()
def migrate():
    """Run database migrations (alembic upgrade head)."""
    import subprocess

    result = subprocess.run(["alembic", "upgrade", "head"], check=False)
    raise typer.Exit(result.returncode)


@app.command()
def serve(
    reload: bool = typer.Option(False, "--reload", "-r", help="Enable hot reload"),
    port: int = typer.Option(8000, "--port", "-p", help="Port to run on"),
):
    """Start the API server."""
    import subprocess

    cmd = ["uvicorn", "rentala.main:app", "--host", "0.0.0.0", "--port", str(port)]
    if reload:
        cmd.append("--reload")

    subprocess.run(cmd, check=False)


if __name__ == "__main__":
    app()
