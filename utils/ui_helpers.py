import os
import json
from typing import List, Any
from rich.console import Console
from rich.table import Table

from identifiers import to_iso

# CLI çıktı modunu belirleyen ortam değişkeni
# İzin verilen değerler: 'plain' (default), 'json', 'rich'
OUTPUT_MODE_ENV = "LIB_CLI_OUTPUT"

_console = Console()


def set_output_mode(mode: str) -> None:
    mode = (mode or "").lower().strip()
    if mode in {"plain", "json", "rich"}:
        os.environ[OUTPUT_MODE_ENV] = mode
    # Geçersiz değerler yoksayılır; mevcut mod korunur


def get_output_mode() -> str:
    return os.environ.get(OUTPUT_MODE_ENV, "plain").lower()


def _print_json(payload: Any) -> None:
    print(json.dumps(payload, ensure_ascii=False))


def print_books(books: List[Any], title: str = "Books") -> None:
    """Kitap listesini mevcut çıktı moduna göre yazdır.
    - plain: 'id - Title by Author [Status]' satırları, veya 'No books in library.'
    - json: to_dict() dizisi
    - rich: Rich tablosu
    """
    if not books:
        print("No books in library.")
        return

    mode = get_output_mode()
    if mode == "json":
        _print_json([b.to_dict() for b in books])
    elif mode == "rich":
        table = Table(title=f"📚 {title}", show_lines=True, header_style="bold cyan")
        table.add_column("ID", style="magenta", no_wrap=True)
        table.add_column("Title", style="white")
        table.add_column("Author", style="white")
        table.add_column("Status", style="green")
        table.add_column("Borrowed", justify="right")
        for b in books:
            table.add_row(b.book_id, b.title, b.author, b.status.value, str(b.borrow_count))
        _console.print(table)
    else:
        for b in books:
            print(f"{b.book_id} - {b.title} by {b.author} [{b.status.value}]")


def print_most_borrowed(books: List[Any]) -> None:
    if not books:
        print("No books in library.")
        return

    mode = get_output_mode()
    if mode == "plain":
        for b in books:
            print(f"{b.borrow_count:>4}  {b.title} by {b.author}")
    else:
        print_books(books, title="Most Borrowed")


def print_members(members: List[Any]) -> None:
    """Üye listesini yazdır; ödünçteki kitap sayısıyla birlikte."""
    if not members:
        print("No members registered.")
        return

    mode = get_output_mode()
    if mode == "json":
        _print_json([m.to_dict() for m in members])
    elif mode == "rich":
        table = Table(title="👥 Members", show_lines=True, header_style="bold cyan")
        table.add_column("ID", style="magenta", no_wrap=True)
        table.add_column("Name", style="white")
        table.add_column("Email", style="white")
        table.add_column("Role")
        table.add_column("On loan", justify="right")
        for m in members:
            table.add_row(m.member_id, m.name, m.email, m.role, str(len(m.borrowed_books)))
        _console.print(table)
    else:
        for m in members:
            print(f"{m.member_id} - {m.name} <{m.email}> ({len(m.borrowed_books)} on loan)")


def print_active_members(rows: List[Any]) -> None:
    if not rows:
        print("No loans recorded.")
        return

    mode = get_output_mode()
    if mode == "json":
        _print_json([r.to_dict() for r in rows])
    elif mode == "rich":
        table = Table(title="🏆 Active Members", show_lines=True, header_style="bold cyan")
        table.add_column("Member ID", style="magenta", no_wrap=True)
        table.add_column("Name", style="white")
        table.add_column("Loans", justify="right")
        for r in rows:
            table.add_row(r.member_id, r.member.name if r.member else "(deleted)", str(r.borrow_count))
        _console.print(table)
    else:
        for r in rows:
            name = r.member.name if r.member else "(deleted member)"
            print(f"{r.borrow_count:>4}  {name} [{r.member_id}]")


def print_loans(loans: List[Any]) -> None:
    if not loans:
        print("No loans recorded.")
        return

    mode = get_output_mode()
    if mode == "json":
        _print_json([loan.to_dict() for loan in loans])
    elif mode == "rich":
        table = Table(title="📒 Loans", show_lines=True, header_style="bold cyan")
        table.add_column("Book", style="magenta", no_wrap=True)
        table.add_column("Member", style="magenta", no_wrap=True)
        table.add_column("Due")
        table.add_column("Returned")
        table.add_column("Fine", justify="right")
        for loan in loans:
            table.add_row(
                loan.book_id, loan.member_id, to_iso(loan.due_date),
                to_iso(loan.returned_on) or "-", str(loan.fine),
            )
        _console.print(table)
    else:
        for loan in loans:
            state = f"returned {to_iso(loan.returned_on)}, fine {loan.fine}" if loan.returned_on else "open"
            print(f"{loan.book_id} -> {loan.member_id} due {to_iso(loan.due_date)} ({state})")
