"""Vendor-side helper that mints a premium activation token.

The token must be redeemed with ``veilpage activate`` within five minutes.
The salt defaults to ``VEILPAGE_LICENSE_SALT`` and must match the one the
installed application uses.
"""

import typer
from rich import print

from veilpage.license import issue_credential
from veilpage.settings import get_settings

app = typer.Typer(add_completion=False, help="Mint Veilpage activation tokens")


@app.command()
def issue(count: int = typer.Option(1, min=1, help="Number of tokens to print")):
    salt = get_settings().license_salt
    for _ in range(count):
        print(issue_credential(salt=salt))


if __name__ == "__main__":
    app()
