import json
import click

from .config import LimitOverrides
from .errors import KeyManagerError
from .lifecycle import get_engine


@click.group()
def cli():
    """Keymaster - team, api key and rate limit policy management."""
    pass


@cli.command()
def serve():
    """Run the HTTP API."""
    from .api.run import main

    raise SystemExit(main())


@cli.command()
@click.argument('team_id')
@click.option('--name', 'team_name', required=True, help='Display name of the team')
@click.option('--description', default='', help='Free-text description')
@click.option('--tier', default='', help='Tier assigned to the team (defaults to DEFAULT_TIER)')
@click.option('--token-limit', type=int, default=None, help='Token limit override (-1 for unlimited)')
@click.option('--request-limit', type=int, default=None, help='Request limit override (-1 for unlimited)')
@click.option('--time-window', default=None, help='Window override, e.g. 1m or 1h')
@click.option('--aggregate', is_flag=True, help='Count the whole team against one budget')
def create_team(team_id, team_name, description, tier, token_limit, request_limit, time_window, aggregate):
    """Create a team and publish its policies."""
    try:
        engine = get_engine()
        team = engine.create_team(
            team_id,
            team_name,
            description=description,
            tier=tier,
            overrides=LimitOverrides(token_limit=token_limit, request_limit=request_limit, time_window=time_window),
            aggregate_limits=aggregate,
        )
        limits = engine.team_limits(team)

        click.echo(f"✅ Team '{team.team_id}' created ({team.tier} tier)")
        click.echo(f"   Tokens: {limits.token_limit}/{limits.token_window}")
        click.echo(f"   Requests: {limits.request_limit}/{limits.request_window}")

    except KeyManagerError as e:
        click.echo(f"❌ Error creating team: {e}", err=True)
        raise click.Abort()


@cli.command()
@click.argument('team_id')
@click.confirmation_option(prompt='This deletes the team with all of its keys. Continue?')
def delete_team(team_id):
    """Delete a team, its policies and all of its keys."""
    try:
        deleted = get_engine().delete_team(team_id)
        click.echo(f"✅ Team '{team_id}' deleted ({deleted} keys removed)")

    except KeyManagerError as e:
        click.echo(f"❌ Error deleting team: {e}", err=True)
        raise click.Abort()


@cli.command()
@click.argument('team_id')
def sync_team(team_id):
    """Re-publish a team's policies from its tier and overrides."""
    try:
        synced = get_engine().sync_team_policy(team_id)
        click.echo(f"✅ Synced {len(synced.policies)} policies for team '{team_id}'")
        for policy in synced.policies:
            click.echo(f"   {policy.name}: {policy.limit}/{policy.window}")

    except KeyManagerError as e:
        click.echo(f"❌ Error syncing team: {e}", err=True)
        raise click.Abort()


@cli.command()
def list_teams():
    """List all teams."""
    try:
        teams = get_engine().list_teams()

        if not teams:
            click.echo("No teams found.")
            return

        click.echo(f"Found {len(teams)} team(s):\n")
        for team in teams:
            click.echo(f"● {team.team_id}")
            click.echo(f"  Name: {team.display_name}")
            click.echo(f"  Tier: {team.tier}")
            if team.description:
                click.echo(f"  Description: {team.description}")
            click.echo()

    except KeyManagerError as e:
        click.echo(f"Error listing teams: {e}", err=True)
        raise click.Abort()


@cli.command()
@click.argument('team_id')
@click.argument('user_id')
@click.option('--alias', default=None, help='Human readable name for the key')
@click.option('--model', 'models', multiple=True, help='Allowed model (repeatable)')
@click.option('--token-limit', type=int, default=None, help='Token limit override (-1 for unlimited)')
@click.option('--request-limit', type=int, default=None, help='Request limit override (-1 for unlimited)')
@click.option('--time-window', default=None, help='Window override, e.g. 1m or 1h')
def create_key(team_id, user_id, alias, models, token_limit, request_limit, time_window):
    """Issue an api key for a user in a team."""
    try:
        created = get_engine().create_api_key(
            team_id,
            user_id,
            alias=alias,
            overrides=LimitOverrides(
                token_limit=token_limit,
                request_limit=request_limit,
                time_window=time_window,
                models=list(models),
            ),
        )

        click.echo(f"✅ API key created: {created.secret_name}")
        click.echo(f"   Key: {created.secret}")
        click.echo("💡 The key is shown only once; store it now.")

    except KeyManagerError as e:
        click.echo(f"❌ Error creating key: {e}", err=True)
        raise click.Abort()


@cli.command()
@click.argument('key_name')
def delete_key(key_name):
    """Delete an api key by its record name."""
    try:
        get_engine().delete_api_key_by_name(key_name)
        click.echo(f"✅ API key '{key_name}' deleted")

    except KeyManagerError as e:
        click.echo(f"❌ Error deleting key: {e}", err=True)
        raise click.Abort()


@cli.command()
@click.argument('tier')
def tier_limits(tier):
    """Show the effective limits of a tier."""
    try:
        limits = get_engine().get_effective_tier_limits(tier)
        click.echo(json.dumps(limits.serialize(), indent=2))

    except KeyManagerError as e:
        click.echo(f"❌ Error resolving tier: {e}", err=True)
        raise click.Abort()


if __name__ == '__main__':
    cli()
