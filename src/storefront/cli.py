"""Command-line interface for storefront."""

import argparse
import json
import sys
from datetime import date
from decimal import Decimal, InvalidOperation

from sqlalchemy.exc import SQLAlchemyError

from . import __version__
from .cart_store import CartStore
from .checkout import CheckoutOrchestrator
from .client import OrderClient
from .config import get_settings
from .db import create_db_engine, create_session_factory, init_db
from .errors import PersistenceError, StorefrontError, ValidationError
from .identity import TokenRegistry
from .logging_config import setup_logging
from .models import CartItem, Identity, Order, OrderFilter, format_money
from .order_service import OrderService
from .order_store import OrderStore
from .pricing import quote, shipping_options
from .tracking import build_tracking, render_tracking, status_label


def get_cart() -> CartStore:
    """Get the CartStore backed by the configured cart file."""
    return CartStore(get_settings().cart_file)


def get_service() -> OrderService:
    """Get an OrderService on the configured database, creating tables if needed."""
    try:
        engine = create_db_engine(get_settings().database_url)
        init_db(engine)
    except (SQLAlchemyError, OSError) as e:
        raise PersistenceError("open the database", e) from e
    return OrderService(OrderStore(create_session_factory(engine)))


def resolve_identity(token: str | None) -> Identity:
    """Resolve a --token value through the configured token file."""
    return TokenRegistry.from_file(get_settings().tokens_file).resolve(token)


def format_order(order: Order) -> str:
    return (
        f"  {order.id:>5}  {order.order_number}  {status_label(order.status):<16}"
        f" {format_money(order.total):>11}  {order.created_at:%Y-%m-%d %H:%M}"
    )


def print_validation_errors(e: ValidationError) -> None:
    print(f"Error: {e.message}", file=sys.stderr)
    for field, messages in e.errors.items():
        for message in messages:
            print(f"  {field}: {message}", file=sys.stderr)


def _money_arg(value: str) -> Decimal:
    try:
        price = Decimal(value)
    except InvalidOperation:
        raise argparse.ArgumentTypeError(f"invalid price: {value}") from None
    if price <= 0:
        raise argparse.ArgumentTypeError(f"price must be positive: {value}")
    return price


def cmd_init_db(args: argparse.Namespace) -> int:
    """Create the order tables."""
    try:
        settings = get_settings()
        engine = create_db_engine(settings.database_url)
        init_db(engine)
        print(f"Initialized database: {engine.url.render_as_string(hide_password=True)}")
        return 0

    except (SQLAlchemyError, OSError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1


# --- Cart ---


def cmd_cart_add(args: argparse.Namespace) -> int:
    """Add a product to the cart."""
    if args.quantity < 1:
        print("Error: Quantity must be at least 1", file=sys.stderr)
        return 1
    cart = get_cart()
    cart.add_item(
        CartItem(
            product_id=args.product_id,
            name=args.name,
            unit_price=args.price,
            quantity=args.quantity,
            image_ref=args.image,
        )
    )
    print(f"Added {args.quantity} x {args.name} ({cart.item_count} item(s) in cart)")
    return 0


def cmd_cart_update(args: argparse.Namespace) -> int:
    """Change a product's quantity."""
    cart = get_cart()
    cart.update_quantity(args.product_id, args.quantity)
    if args.quantity <= 0:
        print(f"Removed product {args.product_id}")
    else:
        print(f"Updated product {args.product_id} to quantity {args.quantity}")
    return 0


def cmd_cart_remove(args: argparse.Namespace) -> int:
    """Remove a product from the cart."""
    get_cart().remove_item(args.product_id)
    print(f"Removed product {args.product_id}")
    return 0


def cmd_cart_list(args: argparse.Namespace) -> int:
    """Show the cart contents."""
    cart = get_cart()

    if args.json:
        data = {
            "items": [i.to_dict() for i in cart.items],
            "subtotal": str(cart.subtotal),
            "item_count": cart.item_count,
        }
        print(json.dumps(data, indent=2))
        return 0

    if cart.is_empty():
        print("Cart is empty.")
        return 0

    print(f"Cart ({cart.item_count} item(s)):")
    print()
    for item in cart.items:
        print(
            f"  {item.product_id:>5}  {item.name:<30} {item.quantity:>3} x "
            f"{format_money(item.unit_price):>10} = {format_money(item.line_total):>10}"
        )
    print()
    print(f"Subtotal: {format_money(cart.subtotal)}")
    return 0


def cmd_cart_clear(args: argparse.Namespace) -> int:
    """Empty the cart."""
    get_cart().clear()
    print("Cart cleared.")
    return 0


def cmd_quote(args: argparse.Namespace) -> int:
    """Price the cart with a shipping option."""
    try:
        cart = get_cart()
        priced = quote(cart.items, args.shipping)

        if args.json:
            data = priced.to_dict()
            data["shippingOptions"] = [o.to_dict() for o in shipping_options(priced.subtotal)]
            print(json.dumps(data, indent=2))
            return 0

        print(f"Subtotal: {format_money(priced.subtotal)}")
        print(f"Shipping: {'Free' if priced.shipping == 0 else format_money(priced.shipping)}")
        print(f"Tax:      {format_money(priced.tax)}")
        print(f"Total:    {format_money(priced.total)}")
        return 0

    except StorefrontError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1


def cmd_checkout(args: argparse.Namespace) -> int:
    """Place an order for the cart through the API."""
    cart = get_cart()
    if cart.is_empty():
        print("Error: Cart is empty.", file=sys.stderr)
        return 1

    client = OrderClient(base_url=args.api_url or get_settings().api_url)
    try:
        checkout = CheckoutOrchestrator(cart, client, token=args.token)
        checkout.submit_information(
            first_name=args.first_name,
            last_name=args.last_name,
            email=args.email,
            phone=args.phone,
            address=args.address,
            city=args.city,
            state=args.state,
            zip_code=args.zip_code,
            country=args.country,
        )
        checkout.select_shipping(args.shipping, same_as_billing=True)
        checkout.select_payment(args.payment, notes=args.notes)

        summary = checkout.review()
        print(f"Placing order for {len(summary.items)} product(s), total {format_money(summary.quote.total)}...")
        order = checkout.place_order()

        print(f"Order placed: {order.order_number}")
        print(f"  ID:     {order.id}")
        print(f"  Total:  {format_money(order.total)}")
        print(f"  Status: {status_label(order.status)}")
        return 0

    except ValidationError as e:
        print_validation_errors(e)
        return 1
    except StorefrontError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
    finally:
        client.close()


# --- Orders ---


def cmd_orders_list(args: argparse.Namespace) -> int:
    """List orders (admin) or the caller's own orders (--mine)."""
    try:
        service = get_service()
        identity = resolve_identity(args.token)

        if args.mine:
            page = service.list_customer_orders(identity, page=args.page, limit=args.limit)
        else:
            filters = OrderFilter(
                status=args.status,
                customer_id=args.customer,
                page=args.page,
                limit=args.limit,
            )
            page = service.list_orders(filters, identity)

        if args.json:
            print(json.dumps(page.to_dict(), indent=2))
            return 0

        if not page.orders:
            print("No orders found.")
            return 0

        print(f"Orders ({page.total}, page {page.page} of {page.total_pages}):")
        print()
        for order in page.orders:
            print(format_order(order))

        return 0

    except StorefrontError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1


def cmd_orders_show(args: argparse.Namespace) -> int:
    """Show one order with its items."""
    try:
        service = get_service()
        order = service.get_order(args.order_id, resolve_identity(args.token))

        if args.json:
            print(json.dumps(order.to_dict(), indent=2))
            return 0

        print(f"Order {order.order_number} (ID {order.id})")
        print(f"  Status:   {status_label(order.status)}")
        print(f"  Customer: {order.contact.full_name} <{order.contact.email}>")
        print(f"  Payment:  {order.payment_method.value} ({order.payment_status.value})")
        print(f"  Placed:   {order.created_at:%Y-%m-%d %H:%M} UTC")
        print()
        for item in order.items:
            print(f"  {item.quantity} x {item.name} @ {format_money(item.unit_price)}")
        print()
        print(f"  Total: {format_money(order.total)}")
        return 0

    except StorefrontError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1


def cmd_orders_status(args: argparse.Namespace) -> int:
    """Change an order's status (admin)."""
    try:
        service = get_service()
        order = service.update_status(
            args.order_id,
            args.status,
            args.delivery_date,
            identity=resolve_identity(args.token),
        )

        print(f"Order {order.order_number} is now {status_label(order.status)}")
        if order.expected_delivery_date:
            print(f"  Expected delivery: {order.expected_delivery_date.isoformat()}")
        return 0

    except StorefrontError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1


def cmd_track(args: argparse.Namespace) -> int:
    """Show the tracking view of an order."""
    try:
        service = get_service()
        order = service.get_order(args.order_id, resolve_identity(args.token))
        view = build_tracking(order)

        if args.json:
            print(json.dumps(view.to_dict(), indent=2))
        else:
            print(render_tracking(view))
        return 0

    except StorefrontError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1


def cmd_serve(args: argparse.Namespace) -> int:
    """Start the API server."""
    try:
        import uvicorn

        settings = get_settings()
        setup_logging(settings.log_level)

        print("Starting storefront API server...")
        print(f"Database: {settings.database_url}")
        print(f"API docs: http://{args.host}:{args.port}/docs")
        print()

        # When reload is enabled, uvicorn requires the app as an import string
        app_target = "storefront.api:app" if args.reload else None
        if app_target is None:
            from .api import app
            app_target = app

        uvicorn.run(
            app_target,
            host=args.host,
            port=args.port,
            reload=args.reload,
            workers=1,
            log_config=None,
        )
        return 0

    except Exception as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1


def create_parser() -> argparse.ArgumentParser:
    """Create the argument parser."""
    parser = argparse.ArgumentParser(
        prog="storefront",
        description="Manage the shopping cart, place orders and track them.",
    )
    parser.add_argument(
        "--version", action="version", version=f"%(prog)s {__version__}"
    )

    subparsers = parser.add_subparsers(dest="command", help="Commands")

    # init-db
    subparsers.add_parser("init-db", help="Create the order database tables")

    # serve
    serve_parser = subparsers.add_parser("serve", help="Start the API server")
    serve_parser.add_argument(
        "--host", default="127.0.0.1", help="Host to bind to (default: 127.0.0.1)"
    )
    serve_parser.add_argument(
        "--port", "-p", type=int, default=8000, help="Port to bind to (default: 8000)"
    )
    serve_parser.add_argument(
        "--reload", action="store_true", help="Enable auto-reload for development"
    )

    # cart (subcommand group)
    cart_parser = subparsers.add_parser("cart", help="Manage the shopping cart")
    cart_subparsers = cart_parser.add_subparsers(dest="cart_command")

    cart_add_parser = cart_subparsers.add_parser("add", help="Add a product")
    cart_add_parser.add_argument("product_id", type=int, help="Product ID")
    cart_add_parser.add_argument("name", help="Product name")
    cart_add_parser.add_argument("price", type=_money_arg, help="Unit price, e.g. 19.99")
    cart_add_parser.add_argument(
        "--quantity", "-q", type=int, default=1, help="Quantity (default: 1)"
    )
    cart_add_parser.add_argument("--image", help="Image reference")

    cart_update_parser = cart_subparsers.add_parser("update", help="Set a product's quantity")
    cart_update_parser.add_argument("product_id", type=int, help="Product ID")
    cart_update_parser.add_argument("quantity", type=int, help="New quantity (0 removes)")

    cart_remove_parser = cart_subparsers.add_parser("remove", help="Remove a product")
    cart_remove_parser.add_argument("product_id", type=int, help="Product ID")

    cart_list_parser = cart_subparsers.add_parser("list", help="Show the cart")
    cart_list_parser.add_argument("--json", action="store_true", help="Output as JSON")

    cart_subparsers.add_parser("clear", help="Empty the cart")

    # quote
    quote_parser = subparsers.add_parser("quote", help="Price the cart")
    quote_parser.add_argument(
        "--shipping", "-s", default="standard", help="Shipping option (default: standard)"
    )
    quote_parser.add_argument("--json", action="store_true", help="Output as JSON")

    # checkout
    checkout_parser = subparsers.add_parser("checkout", help="Place an order for the cart")
    checkout_parser.add_argument("--first-name", required=True)
    checkout_parser.add_argument("--last-name", required=True)
    checkout_parser.add_argument("--email", required=True)
    checkout_parser.add_argument("--phone", required=True)
    checkout_parser.add_argument("--address", required=True, help="Street address")
    checkout_parser.add_argument("--city", required=True)
    checkout_parser.add_argument("--state", required=True)
    checkout_parser.add_argument("--zip", dest="zip_code", required=True, help="ZIP / postal code")
    checkout_parser.add_argument("--country", required=True)
    checkout_parser.add_argument(
        "--shipping", "-s", default="standard", help="Shipping option (default: standard)"
    )
    checkout_parser.add_argument(
        "--payment", default="credit_card", help="credit_card or paypal (default: credit_card)"
    )
    checkout_parser.add_argument("--notes", help="Order notes")
    checkout_parser.add_argument("--token", help="Customer bearer token (omit for guest)")
    checkout_parser.add_argument("--api-url", help="API root (default: STOREFRONT_API_URL)")

    # orders (subcommand group)
    orders_parser = subparsers.add_parser("orders", help="Inspect and manage orders")
    orders_subparsers = orders_parser.add_subparsers(dest="orders_command")

    orders_list_parser = orders_subparsers.add_parser("list", help="List orders")
    orders_list_parser.add_argument("--token", help="Bearer token")
    orders_list_parser.add_argument(
        "--mine", action="store_true", help="List only the token holder's own orders"
    )
    orders_list_parser.add_argument("--status", help="Filter by status ('all' for any)")
    orders_list_parser.add_argument("--customer", type=int, help="Filter by customer ID")
    orders_list_parser.add_argument("--page", type=int, default=1)
    orders_list_parser.add_argument("--limit", type=int, default=10)
    orders_list_parser.add_argument("--json", action="store_true", help="Output as JSON")

    orders_show_parser = orders_subparsers.add_parser("show", help="Show one order")
    orders_show_parser.add_argument("order_id", type=int, help="Order ID")
    orders_show_parser.add_argument("--token", help="Bearer token")
    orders_show_parser.add_argument("--json", action="store_true", help="Output as JSON")

    orders_status_parser = orders_subparsers.add_parser("status", help="Change an order's status")
    orders_status_parser.add_argument("order_id", type=int, help="Order ID")
    orders_status_parser.add_argument(
        "status", help="pending, processing, out_for_delivery, delivered or cancelled"
    )
    orders_status_parser.add_argument(
        "--delivery-date", type=date.fromisoformat, help="Expected delivery date (YYYY-MM-DD)"
    )
    orders_status_parser.add_argument("--token", help="Admin bearer token")

    # track
    track_parser = subparsers.add_parser("track", help="Show order tracking")
    track_parser.add_argument("order_id", type=int, help="Order ID")
    track_parser.add_argument("--token", help="Bearer token")
    track_parser.add_argument("--json", action="store_true", help="Output as JSON")

    return parser


def main() -> int:
    """Main entry point."""
    parser = create_parser()
    args = parser.parse_args()

    if not args.command:
        parser.print_help()
        return 0

    if args.command != "serve":
        setup_logging("WARNING", stream=sys.stderr)

    # Handle cart subcommands
    if args.command == "cart":
        if not getattr(args, "cart_command", None):
            parser.parse_args(["cart", "--help"])
            return 0
        cart_commands = {
            "add": cmd_cart_add,
            "update": cmd_cart_update,
            "remove": cmd_cart_remove,
            "list": cmd_cart_list,
            "clear": cmd_cart_clear,
        }
        return cart_commands[args.cart_command](args)

    # Handle orders subcommands
    if args.command == "orders":
        if not getattr(args, "orders_command", None):
            parser.parse_args(["orders", "--help"])
            return 0
        orders_commands = {
            "list": cmd_orders_list,
            "show": cmd_orders_show,
            "status": cmd_orders_status,
        }
        return orders_commands[args.orders_command](args)

    commands = {
        "init-db": cmd_init_db,
        "serve": cmd_serve,
        "quote": cmd_quote,
        "checkout": cmd_checkout,
        "track": cmd_track,
    }

    cmd_func = commands.get(args.command)
    if cmd_func:
        return cmd_func(args)

    parser.print_help()
    return 0


if __name__ == "__main__":
    sys.exit(main())
