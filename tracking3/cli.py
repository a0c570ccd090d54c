"""tracking3 CLI - send authenticated requests to the Tracking3 API."""

import json
import logging
import sys

import click

TOOL_HELP = """\
tracking3 — command line client for the Tracking3 API.

Sends one authenticated request and prints the status and body.

\b
EXAMPLES
────────
  tracking3 GET https://api.example.com/v1/users/me
  tracking3 POST /v1/documents -b '{"title": "Report"}'
  tracking3 POST /v1/documents -F title=Report --file report.pdf

  Relative URIs are joined to base_uri from the config file.

\b
CREDENTIALS
───────────
  Email and password are always required. An access or refresh token,
  when given, is sent as a bearer token instead of basic auth.

  \b
  --email / TRACKING3_EMAIL
  --password / TRACKING3_PASSWORD
  --access-token / TRACKING3_ACCESS_TOKEN
  --refresh-token / TRACKING3_REFRESH_TOKEN

\b
CONFIG FILE FORMAT (.tracking3.yaml)
────────────────────────────────────
  Config resolution order:
    1. -c/--config flag (explicit path)
    2. .tracking3.yaml / .tracking3.yml / tracking3.yaml / tracking3.yml in CWD
    3. ~/.tracking3/config.yaml (global)

  \b
  base_uri: ${TRACKING3_BASE_URI}
  env_file: .env                    # relative to the config file
  configuration:
    email: ${TRACKING3_EMAIL}
    password: ${TRACKING3_PASSWORD}
    id_application: my-integration
    timeout: 60
    environment: production         # production | development

\b
FILE UPLOADS
────────────
  --file sends multipart/form-data. Body (-b) and -F fields become form
  fields; nested objects are sent as a[b][c] keys. The file's MIME type
  is detected from its content.

\b
OUTPUT FORMAT
─────────────
    STATUS: 200
    BODY:
    {"id": 1}

  --raw prints the body only. Errors print "ERROR: ..." and exit 1.
  HTTP error statuses (4xx/5xx) are printed like any other response.
"""


@click.command(
    help=TOOL_HELP,
    context_settings={"help_option_names": ["-h", "--help"], "max_content_width": 100},
)
@click.argument("method")
@click.argument("uri")
@click.option(
    "-c",
    "--config",
    "config_file",
    default=None,
    help="Config file path. Default: .tracking3.yaml in CWD, then ~/.tracking3/config.yaml.",
)
@click.option("-b", "--body", default=None, help="Request body as a JSON object.")
@click.option(
    "-F",
    "--field",
    "fields",
    multiple=True,
    help="Body field as KEY=VALUE, merged over --body. Repeatable.",
)
@click.option(
    "--file",
    "file_path",
    type=click.Path(exists=True, dir_okay=False),
    default=None,
    help="File to upload. Sends multipart/form-data.",
)
@click.option(
    "-H",
    "--header",
    multiple=True,
    help="HTTP header as 'Name: Value'. Overrides defaults. Repeatable.",
)
@click.option("--timeout", type=int, default=None, help="Request timeout in seconds.")
@click.option("--email", envvar="TRACKING3_EMAIL", default=None, help="Account email.")
@click.option("--password", envvar="TRACKING3_PASSWORD", default=None, help="Account password.")
@click.option("--access-token", envvar="TRACKING3_ACCESS_TOKEN", default=None)
@click.option("--refresh-token", envvar="TRACKING3_REFRESH_TOKEN", default=None)
@click.option(
    "--raw",
    is_flag=True,
    default=False,
    help="Output the response body only. Useful for piping.",
)
@click.option("--debug", is_flag=True, default=False, help="Log request details to stderr.")
def main(
    method,
    uri,
    config_file,
    body,
    fields,
    file_path,
    header,
    timeout,
    email,
    password,
    access_token,
    refresh_token,
    raw,
    debug,
):
    """Send one request to the Tracking3 API."""
    from tracking3.core import (
        load_config,
        load_configuration,
        load_env,
        resolve_config_path,
        resolve_value,
    )
    from tracking3.errors import Tracking3Error
    from tracking3.executor import RequestHandler

    if debug:
        logging.basicConfig(level=logging.DEBUG, stream=sys.stderr)

    # --- Load config ---
    config_path = resolve_config_path(config_file)
    config = load_config(config_path)
    env = load_env(config.get("env_file"), config.get("_config_dir") or ".")

    try:
        configuration = load_configuration(
            config,
            env,
            overrides={
                "email": email,
                "password": password,
                "access_token": access_token,
                "refresh_token": refresh_token,
                "timeout": timeout,
            },
        )
    except Tracking3Error as e:
        click.echo(f"ERROR: {e}", err=True)
        sys.exit(1)

    request_body = _build_body(body, fields)

    base_uri = resolve_value(config.get("base_uri"), env) or ""
    if not uri.startswith(("http://", "https://")):
        uri = base_uri.rstrip("/") + "/" + uri.lstrip("/")

    handler = RequestHandler()
    try:
        if file_path:
            with open(file_path, "rb") as fh:
                response = handler.do_request(
                    method.upper(),
                    uri,
                    configuration,
                    body=request_body,
                    file=fh,
                    custom_headers=_parse_headers(header),
                )
        else:
            response = handler.do_request(
                method.upper(),
                uri,
                configuration,
                body=request_body,
                custom_headers=_parse_headers(header),
            )
    except Tracking3Error as e:
        click.echo(f"ERROR: {e}", err=True)
        sys.exit(1)

    click.echo(format_output(response, raw=raw))


# ── Helpers ──────────────────────────────────────────────────────────────


def _build_body(body, fields):
    """Parse the -b JSON object and merge -F KEY=VALUE fields over it."""
    request_body = {}
    if body:
        try:
            request_body = json.loads(body)
        except json.JSONDecodeError as e:
            click.echo(f"ERROR: --body is not valid JSON: {e}", err=True)
            sys.exit(1)
        if not isinstance(request_body, dict):
            click.echo("ERROR: --body must be a JSON object.", err=True)
            sys.exit(1)
    for spec in fields:
        if "=" not in spec:
            continue
        key, value = spec.split("=", 1)
        request_body[key.strip()] = value
    return request_body or None


def _parse_headers(header_tuples):
    """Parse -H 'Name: Value' tuples into a dict."""
    headers = {}
    for h in header_tuples:
        if ":" in h:
            k, v = h.split(":", 1)
            headers[k.strip()] = v.strip()
    return headers


def format_output(response, raw=False):
    """Render a Response as STATUS/BODY text, pretty-printing JSON bodies."""
    try:
        body = json.dumps(json.loads(response.body), indent=2, ensure_ascii=False)
    except (json.JSONDecodeError, ValueError):
        body = response.body

    if raw:
        return body
    return f"STATUS: {response.status}\nBODY:\n{body}"
