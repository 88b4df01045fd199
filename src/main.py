from importlib import metadata

import click

import config

logger = config.get_logger(service="main")

PACKAGE_NAME = "aws-groups-manager"


def get_version() -> str:
    try:
        return metadata.version(PACKAGE_NAME)
    except metadata.PackageNotFoundError:
        return "dev"


@click.group(invoke_without_command=True, help="Manage IAM Identity Center groups from a TUI.")
@click.option("--profile", default=None, help="AWS profile name.")
@click.option("--region", default=None, help="AWS region.")
@click.pass_context
def cli(ctx: click.Context, profile: str | None, region: str | None) -> None:
    cfg = config.get_config()
    ctx.ensure_object(dict)
    ctx.obj["profile"] = profile or cfg.aws_profile or ""
    ctx.obj["region"] = region or cfg.aws_region or ""
    if ctx.invoked_subcommand is None:
        ctx.invoke(tui)


@cli.command(help="Run interactive TUI.")
@click.pass_context
def tui(ctx: click.Context) -> None:
    from app import run

    profile, region = ctx.obj["profile"], ctx.obj["region"]
    logger.info("Starting TUI", extra={"profile": profile, "region": region, "version": get_version()})
    run(profile=profile, region=region)


@cli.command(help="Print build version.")
def version() -> None:
    click.echo(get_version())


if __name__ == "__main__":
    cli()
