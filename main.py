import os
import subprocess
import sys
from contextlib import contextmanager
from dataclasses import replace
from typing import Iterator, Optional

import typer
from rich.console import Console

from config import settings
from errors import LibraryError
from identifiers import to_iso
from library import Library
from utils.ui_helpers import (
    print_active_members,
    print_books,
    print_loans,
    print_members,
    print_most_borrowed,
    set_output_mode,
)

APP_NAME = "Library Desk CLI"

console = Console()

# Genel seçeneklerle belirlenen oturum durumu
_state = {"db_file": None}


@contextmanager
def open_library() -> Iterator[Library]:
    """Komut süresince açık bir Library verir; servis hatalarını kullanıcıya yazar."""
    config = settings
    if _state["db_file"]:
        config = replace(settings, database_file=_state["db_file"])
    library = Library(config)
    try:
        library.open()
    except LibraryError as exc:
        console.print(f"[bold red]Kütüphane açılamadı: {exc.message}[/]")
        raise typer.Exit(code=1)
    try:
        yield library
    except LibraryError as exc:
        print(f"Error: {exc.message}")
        raise typer.Exit(code=1)
    finally:
        library.close()


# --- Typer CLI Uygulaması ---
app = typer.Typer(help=APP_NAME)
report_app = typer.Typer(help="Ödünç verme raporları")
app.add_typer(report_app, name="report")


@app.callback()
def _global_options(
    output: Optional[str] = typer.Option(
        None,
        "--output",
        "-o",
        help="Çıktı formatı: plain | json | rich (varsayılan: plain)",
    ),
    db: Optional[str] = typer.Option(
        None,
        "--db",
        help="SQLite veritabanı dosyası (varsayılan: LIBRARY_DB_FILE)",
    ),
):
    """CLI için genel seçenekler (ör. çıktı modu, veritabanı)."""
    if output:
        set_output_mode(output)
    _state["db_file"] = db


@app.command("books")
def cli_books():
    """Tüm kitapları listele, en yeni önce."""
    with open_library() as library:
        print_books(library.catalog.list_books())


@app.command("members")
def cli_members():
    """Tüm üyeleri listele."""
    with open_library() as library:
        print_members(library.members.list_members())


@app.command("add-book")
def cli_add_book(
    title: str,
    author: str,
    genre: Optional[str] = typer.Option(None, help="Tür (varsayılan: Unknown)"),
    year: Optional[int] = typer.Option(None, help="Yayın yılı"),
    isbn: Optional[str] = typer.Option(None, help="ISBN"),
):
    """Kataloğa elle bir kitap ekle."""
    with open_library() as library:
        book = library.catalog.add_book(
            {"title": title, "author": author, "genre": genre, "year": year, "isbn": isbn}
        )
        print(f"Added book {book.book_id}: {book.title} by {book.author}")


@app.command("add-member")
def cli_add_member(
    name: str,
    email: str,
    role: Optional[str] = typer.Option(None, help="Üye rolü (varsayılan: student)"),
):
    """Yeni bir üye kaydet."""
    with open_library() as library:
        member = library.members.add_member({"name": name, "email": email, "role": role})
        print(f"Added member {member.member_id}: {member.name} <{member.email}>")


@app.command("borrow")
def cli_borrow(
    book_id: str,
    member_id: str,
    days: Optional[int] = typer.Option(None, help="Ödünç süresi, gün (varsayılan: 7)"),
):
    """Bir kitabı bir üyeye ödünç ver."""
    with open_library() as library:
        due_date = library.circulation.borrow(book_id, member_id, days)
        print(f"Borrowed. Due {to_iso(due_date)}")


@app.command("return")
def cli_return(book_id: str, member_id: str):
    """Ödünç verilen bir kitabı iade al ve cezayı göster."""
    with open_library() as library:
        fine = library.circulation.return_book(book_id, member_id)
        print(f"Returned. Fine: {fine}")


@app.command("loans")
def cli_loans(
    member_id: Optional[str] = typer.Option(None, "--member", help="Yalnızca bu üyenin kayıtları"),
    open_only: bool = typer.Option(False, "--open", help="Yalnızca açık ödünçler"),
):
    """Ödünç defterini listele."""
    with open_library() as library:
        print_loans(library.circulation.loans(member_id, open_only))


@report_app.command("most-borrowed")
def cli_report_most_borrowed(limit: Optional[int] = typer.Option(None, help="En fazla kaç kayıt (1-100)")):
    """En çok ödünç alınan kitaplar."""
    with open_library() as library:
        print_most_borrowed(library.reports.most_borrowed(limit))


@report_app.command("active-members")
def cli_report_active_members(limit: Optional[int] = typer.Option(None, help="En fazla kaç kayıt (1-100)")):
    """En çok ödünç alan üyeler."""
    with open_library() as library:
        print_active_members(library.reports.active_members(limit))


@app.command("create-user")
def cli_create_user(
    name: str,
    email: str,
    password: str = typer.Option(..., prompt=True, hide_input=True, confirmation_prompt=True),
    role: str = typer.Option("member", help="admin | member"),
):
    """Giriş yapabilen bir kullanıcı oluştur (ör. ilk yönetici)."""
    with open_library() as library:
        user = library.auth.signup(name, email, password, role)
        print(f"Created {user.role} user {user.email}")


@app.command()
def serve(host: Optional[str] = None, port: Optional[int] = None):
    """Web arayüzü ve API için Uvicorn sunucusunu başlatır."""
    host = host or settings.api_host
    port = int(port or settings.api_port)
    url = f"http://{host}:{port}/"
    console.print(f"[green]Sunucu başlatılıyor: [link={url}]{url}[/link][/]")

    env = dict(os.environ)
    if _state["db_file"]:
        env["LIBRARY_DB_FILE"] = _state["db_file"]
    args = [
        sys.executable,
        "-m", "uvicorn",
        "api:app",
        "--host", host,
        "--port", str(port),
    ]
    try:
        subprocess.run(args, env=env, check=False)
    except KeyboardInterrupt:
        console.print("[yellow]Sunucu durduruldu.[/]")


if __name__ == "__main__":
    app()
