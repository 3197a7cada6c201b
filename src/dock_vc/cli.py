"""
Command-line interface for dock-vc.

Usage:
    dock-vc issue draft.json --key issuer-key.json
    dock-vc verify credential.json --did-document issuer-did.json
    dock-vc verify-presentation presentation.json --challenge abc123
    cat credential.json | dock-vc verify -
"""

from __future__ import annotations

import asyncio
import json
import sys
from pathlib import Path
from typing import Any, Callable

import click
import httpx
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from dock_vc.credentials import VerifyOptions, issue_credential, verify_credential
from dock_vc.did_resolver import DIDResolver, StaticResolver, parse_did_document
from dock_vc.presentations import verify_presentation
from dock_vc.proofs import VerificationResult, extract_issuer
from dock_vc.revocation import DOCK_PROVIDER, build_credential_status
from dock_vc.schema import StaticSchemaService
from dock_vc.suites import KeyDescriptor


console = Console()


def format_result(document: dict[str, Any], result: VerificationResult) -> None:
    """Format and print verification result."""
    if result.verified:
        status_icon = "[bold green]VERIFIED[/]"
        panel_style = "green"
    else:
        status_icon = "[bold red]NOT VERIFIED[/]"
        panel_style = "red"

    table = Table(show_header=False, box=None, padding=(0, 2))
    table.add_column("Field", style="dim")
    table.add_column("Value")

    table.add_row("Status", status_icon)

    if document.get("id"):
        table.add_row("ID", document["id"])

    issuer = extract_issuer(document)
    if issuer:
        table.add_row("Issuer", issuer)
    if document.get("holder"):
        table.add_row("Holder", document["holder"])

    for proof in result.results:
        proof_status = "[green]Valid[/]" if proof.verified else "[red]Invalid[/]"
        table.add_row("Proof", f"{proof_status} ({proof.proof_type})")
        table.add_row("Verification Method", proof.verification_method)
        if proof.error:
            table.add_row("Proof Error", f"[red]{proof.error}[/]")

    for index, credential_result in enumerate(result.credential_results):
        credential_status = "[green]Valid[/]" if credential_result.verified else "[red]Invalid[/]"
        table.add_row(f"Credential {index}", credential_status)

    console.print(Panel(table, title="Verification Result", border_style=panel_style))

    if result.error:
        console.print(f"\n[bold red]Error:[/] {result.error}")


def load_document(source: str, timeout: float = 30.0) -> dict[str, Any]:
    """Load a JSON document from file, URL, or stdin.

    Args:
        source: File path, URL, or "-" for stdin.
        timeout: HTTP request timeout in seconds.
    """
    if source == "-":
        return json.loads(sys.stdin.read())

    if source.startswith("http://") or source.startswith("https://"):
        with httpx.Client(timeout=timeout) as client:
            response = client.get(
                source,
                headers={"Accept": "application/vc+ld+json, application/json"},
            )
            response.raise_for_status()
            return response.json()

    path = Path(source)
    if not path.exists():
        raise click.ClickException(f"File not found: {source}")

    with path.open() as f:
        return json.load(f)


def _verification_options(func: Callable[..., Any]) -> Callable[..., Any]:
    """Options shared by the verify commands."""
    options = [
        click.option(
            "--did-document",
            "did_documents",
            multiple=True,
            type=click.Path(exists=True, dir_okay=False),
            help="DID Document to resolve locally; did:web DIDs are resolved over HTTPS",
        ),
        click.option(
            "--no-revocation-check",
            is_flag=True,
            help="Do not force the revocation check (no revocation service is available)",
        ),
        click.option(
            "--check-schema",
            is_flag=True,
            help="Validate credential subjects against their credentialSchema",
        ),
        click.option(
            "--schema-document",
            "schema_documents",
            multiple=True,
            type=click.Path(exists=True, dir_okay=False),
            help="Ledger schema document (id, author, schema) to serve locally with --check-schema",
        ),
        click.option(
            "--no-ssl-verify",
            is_flag=True,
            help="Disable SSL certificate verification",
        ),
        click.option(
            "--json-output",
            is_flag=True,
            help="Output result as JSON",
        ),
        click.option(
            "--timeout",
            type=float,
            default=30.0,
            help="HTTP request timeout in seconds",
        ),
    ]
    for option in reversed(options):
        func = option(func)
    return func


def _build_options(
    did_documents: tuple[str, ...],
    no_revocation_check: bool,
    check_schema: bool,
    schema_documents: tuple[str, ...],
    no_ssl_verify: bool,
    timeout: float,
    **extra: Any,
) -> VerifyOptions:
    documents = {}
    for path in did_documents:
        doc = parse_did_document(json.loads(Path(path).read_text()))
        documents[doc.id] = doc

    resolver = StaticResolver(
        documents,
        fallback=DIDResolver(timeout=timeout, verify_ssl=not no_ssl_verify),
    )

    schema_api = None
    if check_schema:
        schema_service = StaticSchemaService()
        for path in schema_documents:
            schema_service.add(json.loads(Path(path).read_text()))
        schema_api = {DOCK_PROVIDER: schema_service}
    return VerifyOptions(
        resolver=resolver,
        force_revocation_check=not no_revocation_check,
        schema_api=schema_api,
        **extra,
    )


def _report(document: dict[str, Any], result: VerificationResult, json_output: bool) -> None:
    if json_output:
        console.print_json(data=result.to_dict())
    else:
        format_result(document, result)
    sys.exit(0 if result.verified else 1)


def _fail(error: str, json_output: bool) -> None:
    if json_output:
        console.print_json(data={"error": error})
    else:
        console.print(f"[red]Error:[/] {error}")
    sys.exit(2)


def _run_verification(
    source: str,
    json_output: bool,
    timeout: float,
    verify: Callable[[dict[str, Any]], Any],
) -> None:
    try:
        document = load_document(source, timeout=timeout)
        result = asyncio.run(verify(document))
        _report(document, result, json_output)

    except json.JSONDecodeError as e:
        _fail(f"Invalid JSON: {e}", json_output)

    except httpx.HTTPError as e:
        _fail(f"HTTP error: {e}", json_output)

    except Exception as e:
        _fail(str(e), json_output)


@click.group()
@click.version_option(package_name="dock-vc")
def main() -> None:
    """Issue and verify W3C Verifiable Credentials and Presentations."""


@main.command()
@click.argument("draft", required=True)
@click.option(
    "--key",
    "key_path",
    required=True,
    type=click.Path(exists=True, dir_okay=False),
    help="Key document with id, controller, type, publicKeyBase58 and privateKeyBase58",
)
@click.option(
    "--registry",
    "registry_id",
    help="Make the credential revocable in this Dock revocation registry",
)
@click.option(
    "--expanded-proof",
    is_flag=True,
    help="Write the proof with expanded IRIs instead of compact terms",
)
def issue(draft: str, key_path: str, registry_id: str | None, expanded_proof: bool) -> None:
    """Sign the credential DRAFT (a path or "-") and print it."""
    try:
        credential = load_document(draft)
        key = KeyDescriptor.from_key_doc(json.loads(Path(key_path).read_text()))
        if registry_id:
            credential["credentialStatus"] = build_credential_status(registry_id)
        signed = issue_credential(key, credential, compact_proof=not expanded_proof)
    except (ValueError, KeyError) as e:
        raise click.ClickException(str(e)) from e
    console.print_json(data=signed)


@main.command()
@click.argument("source", required=True)
@_verification_options
def verify(
    source: str,
    json_output: bool,
    timeout: float,
    **kwargs: Any,
) -> None:
    """Verify a W3C Verifiable Credential.

    SOURCE can be:
    - A file path (e.g., credential.json)
    - A URL (e.g., https://example.com/credentials/123)
    - "-" to read from stdin

    Examples:

        dock-vc verify credential.json --did-document issuer.json

        dock-vc verify https://example.com/credentials/123

        cat credential.json | dock-vc verify - --no-revocation-check
    """
    options = _build_options(timeout=timeout, **kwargs)
    _run_verification(
        source, json_output, timeout, lambda doc: verify_credential(doc, options)
    )


@main.command("verify-presentation")
@click.argument("source", required=True)
@click.option("--challenge", required=True, help="Challenge the presentation was signed with")
@click.option("--domain", help="Domain the presentation was signed for")
@_verification_options
def verify_presentation_command(
    source: str,
    challenge: str,
    domain: str | None,
    json_output: bool,
    timeout: float,
    **kwargs: Any,
) -> None:
    """Verify a W3C Verifiable Presentation and the credentials in it."""
    options = _build_options(timeout=timeout, challenge=challenge, domain=domain, **kwargs)
    _run_verification(
        source, json_output, timeout, lambda doc: verify_presentation(doc, options)
    )


if __name__ == "__main__":
    main()
