"""Command-line interface for storefront."""

import argparse
import csv
import json
import logging
import sys
from pathlib import Path

from . import __version__
from .errors import OrderNotFoundError, StorefrontError, ValidationError
from .models import Order, Product, VariantStock
from .order_status import ORDER_STATUSES
from .services import Storefront, build_storefront
from .utils import format_inr, q2

EXPORT_COLUMNS = [
    "order_no",
    "created_at",
    "user_id",
    "full_name",
    "phone",
    "city",
    "pincode",
    "items",
    "payment_method",
    "payment_status",
    "order_status",
    "subtotal",
    "discount_total",
    "gst_total",
    "cgst_total",
    "total_amount",
    "tracking_no",
    "courier_provider",
]


def get_storefront() -> Storefront:
    """Build the storefront from the environment (STOREFRONT_DATA_DIR etc.)."""
    return build_storefront()


def find_order(storefront: Storefront, ref: str) -> Order:
    """Resolve an order by ID or by order number."""
    if ref.startswith("ORD-"):
        return storefront.orders.get_by_order_no(ref)
    try:
        return storefront.orders.get_order(ref)
    except OrderNotFoundError:
        return storefront.orders.get_by_order_no(ref)


def parse_variant(value: str) -> VariantStock:
    """Parse ``SIZE:COLOR:COUNT``."""
    parts = value.split(":")
    if len(parts) != 3 or not parts[2].strip().lstrip("-").isdigit():
        raise ValidationError(f"Invalid variant '{value}', expected SIZE:COLOR:COUNT", fields=["variant"])
    return VariantStock(size=parts[0].strip(), color=parts[1].strip(), stock=int(parts[2]))


def split_list(value: str | None) -> list[str]:
    if not value:
        return []
    return [v.strip() for v in value.split(",") if v.strip()]


def format_product(product: Product) -> str:
    price = format_inr(product.final_price)
    if product.discount_percent:
        price = f"{price} ({q2(product.discount_percent)}% off {format_inr(product.price_inr)})"
    state = "" if product.is_active else "  [inactive]"
    return f"{product.id[:8]}  {product.title}  {price}  stock={product.stock}{state}"


def format_order(order: Order) -> str:
    return (
        f"{order.order_no}  {order.order_status:<10}  {order.payment_method}/{order.payment_status:<9}  "
        f"{format_inr(order.total_amount)}"
    )


def order_export_row(order: Order) -> dict[str, str]:
    address = order.shipping_address
    items = "; ".join(
        f"{item.product_name} x{item.quantity}"
        + (f" ({'/'.join(v for v in (item.size, item.color) if v)})" if item.size or item.color else "")
        for item in order.items
    )
    return {
        "order_no": order.order_no,
        "created_at": order.created_at,
        "user_id": order.user_id,
        "full_name": address.full_name,
        "phone": address.phone,
        "city": address.city,
        "pincode": address.pincode,
        "items": items,
        "payment_method": order.payment_method,
        "payment_status": order.payment_status,
        "order_status": order.order_status,
        "subtotal": str(q2(order.subtotal)),
        "discount_total": str(q2(order.discount_total)),
        "gst_total": str(q2(order.gst_total)),
        "cgst_total": str(q2(order.cgst_total)),
        "total_amount": str(q2(order.total_amount)),
        "tracking_no": order.tracking_no or "",
        "courier_provider": order.courier_provider or "",
    }


def cmd_serve(args: argparse.Namespace) -> int:
    """Start the API server."""
    try:
        import uvicorn

        storefront = get_storefront()
        if not storefront.config.razorpay_key_secret:
            print("Warning: RAZORPAY_KEY_SECRET is not set; online payments will fail.", file=sys.stderr)

        print("Starting storefront API server...")
        print(f"Data directory: {storefront.config.data_dir}")
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
        )
        return 0

    except Exception as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1


def cmd_products_list(args: argparse.Namespace) -> int:
    """List catalog products."""
    try:
        storefront = get_storefront()
        products = storefront.products.list_products(active_only=not args.all)

        if not products:
            print("No products.")
            return 0

        if args.json:
            print(json.dumps([p.to_dict() for p in products], indent=2))
        else:
            print(f"Products ({len(products)}):")
            print()
            for p in products:
                print(f"  {format_product(p)}")
                for v in p.variant_stock:
                    print(f"            {v.size}/{v.color}: {v.stock}")

        return 0

    except StorefrontError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1


def cmd_products_add(args: argparse.Namespace) -> int:
    """Add a product."""
    try:
        storefront = get_storefront()
        product = Product.create(
            title=args.title,
            price_inr=args.price,
            brand=args.brand,
            discount_percent=args.discount,
            gst_percent=args.gst,
            cgst_percent=args.cgst,
            stock=args.stock,
            sizes=split_list(args.sizes),
            colors=split_list(args.colors),
        )
        storefront.products.add_product(product)

        print(f"Added product: {product.id}")
        print(f"  Title: {product.title}")
        print(f"  Price: {format_inr(product.final_price)}")
        return 0

    except StorefrontError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1


def cmd_products_stock(args: argparse.Namespace) -> int:
    """Set flat or per-variant stock for a product."""
    try:
        storefront = get_storefront()
        if args.variant:
            variants = [parse_variant(v) for v in args.variant]
            product = storefront.products.set_variant_stock(args.product_id, variants)
        elif args.set is not None:
            product = storefront.products.set_stock(args.product_id, args.set)
        else:
            print("Error: pass --set COUNT or --variant SIZE:COLOR:COUNT", file=sys.stderr)
            return 1

        print(f"Stock updated: {product.title} = {product.stock}")
        return 0

    except StorefrontError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1


def cmd_orders_list(args: argparse.Namespace) -> int:
    """List orders."""
    try:
        storefront = get_storefront()
        orders = storefront.orders.list_orders(
            user_id=args.user, order_status=args.status, payment_status=args.payment_status
        )

        if not orders:
            print("No orders.")
            return 0

        if args.json:
            print(json.dumps([o.to_dict() for o in orders], indent=2))
        else:
            print(f"Orders ({len(orders)}):")
            print()
            for o in orders:
                print(f"  {format_order(o)}")

        return 0

    except StorefrontError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1


def cmd_orders_show(args: argparse.Namespace) -> int:
    """Show one order."""
    try:
        storefront = get_storefront()
        order = find_order(storefront, args.order)

        if args.json:
            print(json.dumps(order.to_dict(), indent=2))
            return 0

        address = order.shipping_address
        print(f"Order {order.order_no} ({order.id})")
        print(f"  Status:   {order.order_status}")
        print(f"  Payment:  {order.payment_method} / {order.payment_status}")
        if order.gateway_payment_id:
            print(f"  Gateway:  {order.gateway_order_id} / {order.gateway_payment_id}")
        if order.tracking_no:
            print(f"  Shipping: {order.courier_provider} {order.tracking_no}")
        print(f"  Ship to:  {address.full_name}, {address.city} {address.pincode}")
        print()
        for item in order.items:
            variant = "/".join(v for v in (item.size, item.color) if v)
            variant = f" [{variant}]" if variant else ""
            print(f"  {item.quantity} x {item.product_name}{variant}  {format_inr(item.line_total)}")
        print()
        print(f"  Total: {format_inr(order.total_amount)}")
        return 0

    except StorefrontError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1


def cmd_orders_status(args: argparse.Namespace) -> int:
    """Move an order to a new status."""
    try:
        storefront = get_storefront()
        order = find_order(storefront, args.order)
        updated = storefront.status.transition(
            order.id,
            args.status,
            tracking_no=args.tracking_no,
            courier_provider=args.courier,
        )
        print(f"Order {updated.order_no}: {order.order_status} -> {updated.order_status}")
        return 0

    except StorefrontError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1


def cmd_orders_export(args: argparse.Namespace) -> int:
    """Export orders as CSV or JSON."""
    try:
        storefront = get_storefront()
        orders = storefront.orders.list_orders(order_status=args.status)
        rows = [order_export_row(o) for o in orders]

        out = open(args.output, "w", newline="", encoding="utf-8") if args.output else sys.stdout
        try:
            if args.format == "json":
                json.dump(rows, out, indent=2)
                out.write("\n")
            else:
                writer = csv.DictWriter(out, fieldnames=EXPORT_COLUMNS)
                writer.writeheader()
                writer.writerows(rows)
        finally:
            if args.output:
                out.close()

        if args.output:
            print(f"Exported {len(rows)} order(s) to {Path(args.output)}", file=sys.stderr)
        return 0

    except StorefrontError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1


def cmd_orders_purge(args: argparse.Namespace) -> int:
    """Delete orders outright (no restock)."""
    try:
        storefront = get_storefront()
        ids = [find_order(storefront, ref).id for ref in args.orders]

        if not args.yes:
            print(f"This will permanently delete {len(ids)} order(s).")
            print("Run with --yes to confirm.")
            return 1

        removed = storefront.orders.delete_orders(ids)
        print(f"Deleted {removed} order(s).")
        return 0

    except StorefrontError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1


def cmd_invoice(args: argparse.Namespace) -> int:
    """Render the invoice of an order as Markdown."""
    try:
        storefront = get_storefront()
        order = find_order(storefront, args.order)
        document = storefront.emitter.render(order)

        if args.output:
            Path(args.output).write_text(document, encoding="utf-8")
            print(f"Invoice written to {args.output}")
        else:
            print(document)
        return 0

    except StorefrontError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1


def cmd_settings_list(args: argparse.Namespace) -> int:
    """List global settings."""
    try:
        storefront = get_storefront()
        settings = storefront.settings.get_all()

        if args.json:
            print(json.dumps(settings, indent=2))
        else:
            for key in sorted(settings):
                print(f"{key} = {settings[key]}")
        return 0

    except StorefrontError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1


def cmd_settings_set(args: argparse.Namespace) -> int:
    """Set one global setting."""
    try:
        storefront = get_storefront()
        storefront.settings.set(args.key, args.value)
        print(f"{args.key} = {args.value}")
        return 0

    except StorefrontError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1


def create_parser() -> argparse.ArgumentParser:
    """Create the argument parser."""
    parser = argparse.ArgumentParser(
        prog="storefront",
        description="Storefront order, payment and catalog administration.",
    )
    parser.add_argument(
        "--version", action="version", version=f"%(prog)s {__version__}"
    )
    parser.add_argument(
        "--verbose", "-v", action="store_true", help="Enable debug logging"
    )

    subparsers = parser.add_subparsers(dest="command", help="Commands")

    # serve
    serve_parser = subparsers.add_parser("serve", help="Start the API server")
    serve_parser.add_argument(
        "--host", default="127.0.0.1", help="Host to bind to (default: 127.0.0.1)"
    )
    serve_parser.add_argument(
        "--port", type=int, default=8000, help="Port to bind to (default: 8000)"
    )
    serve_parser.add_argument(
        "--reload", action="store_true", help="Enable auto-reload for development"
    )

    # products
    products_parser = subparsers.add_parser("products", help="Manage the catalog")
    products_subparsers = products_parser.add_subparsers(dest="products_command", help="Product commands")

    products_list_parser = products_subparsers.add_parser("list", help="List products")
    products_list_parser.add_argument("--all", action="store_true", help="Include inactive products")
    products_list_parser.add_argument("--json", action="store_true", help="Output as JSON")

    products_add_parser = products_subparsers.add_parser("add", help="Add a product")
    products_add_parser.add_argument("title", help="Product title")
    products_add_parser.add_argument("--price", required=True, help="Price in INR")
    products_add_parser.add_argument("--brand", help="Brand")
    products_add_parser.add_argument("--discount", default="0", help="Discount percent")
    products_add_parser.add_argument("--gst", default="0", help="GST percent")
    products_add_parser.add_argument("--cgst", default="0", help="CGST percent")
    products_add_parser.add_argument("--stock", type=int, default=0, help="Flat stock count")
    products_add_parser.add_argument("--sizes", help="Comma-separated sizes, e.g. S,M,L")
    products_add_parser.add_argument("--colors", help="Comma-separated colors")

    products_stock_parser = products_subparsers.add_parser("stock", help="Set product stock")
    products_stock_parser.add_argument("product_id", help="Product ID")
    products_stock_parser.add_argument("--set", type=int, help="Flat stock count")
    products_stock_parser.add_argument(
        "--variant",
        action="append",
        metavar="SIZE:COLOR:COUNT",
        help="Variant stock (repeatable); replaces all variants",
    )

    # orders
    orders_parser = subparsers.add_parser("orders", help="Manage orders")
    orders_subparsers = orders_parser.add_subparsers(dest="orders_command", help="Order commands")

    orders_list_parser = orders_subparsers.add_parser("list", help="List orders")
    orders_list_parser.add_argument("--user", help="Filter by user ID")
    orders_list_parser.add_argument("--status", choices=ORDER_STATUSES, help="Filter by order status")
    orders_list_parser.add_argument("--payment-status", help="Filter by payment status")
    orders_list_parser.add_argument("--json", action="store_true", help="Output as JSON")

    orders_show_parser = orders_subparsers.add_parser("show", help="Show an order")
    orders_show_parser.add_argument("order", help="Order ID or order number")
    orders_show_parser.add_argument("--json", action="store_true", help="Output as JSON")

    orders_status_parser = orders_subparsers.add_parser("status", help="Change order status")
    orders_status_parser.add_argument("order", help="Order ID or order number")
    orders_status_parser.add_argument("status", choices=ORDER_STATUSES, help="New status")
    orders_status_parser.add_argument("--tracking-no", help="Tracking number (required for shipped)")
    orders_status_parser.add_argument("--courier", help="Courier provider (required for shipped)")

    orders_export_parser = orders_subparsers.add_parser("export", help="Export orders")
    orders_export_parser.add_argument(
        "--format", choices=["csv", "json"], default="csv", help="Output format (default: csv)"
    )
    orders_export_parser.add_argument("--output", "-o", help="Output file (default: stdout)")
    orders_export_parser.add_argument("--status", choices=ORDER_STATUSES, help="Filter by order status")

    orders_purge_parser = orders_subparsers.add_parser("purge", help="Delete orders permanently")
    orders_purge_parser.add_argument("orders", nargs="+", help="Order IDs or order numbers")
    orders_purge_parser.add_argument("--yes", "-y", action="store_true", help="Confirm deletion")

    # invoice
    invoice_parser = subparsers.add_parser("invoice", help="Render an order invoice")
    invoice_parser.add_argument("order", help="Order ID or order number")
    invoice_parser.add_argument("--output", "-o", help="Write to file instead of stdout")

    # settings
    settings_parser = subparsers.add_parser("settings", help="Manage global settings")
    settings_subparsers = settings_parser.add_subparsers(dest="settings_command", help="Settings commands")

    settings_list_parser = settings_subparsers.add_parser("list", help="List settings")
    settings_list_parser.add_argument("--json", action="store_true", help="Output as JSON")

    settings_set_parser = settings_subparsers.add_parser("set", help="Set a setting")
    settings_set_parser.add_argument("key", help="Setting key, e.g. gst_percentage")
    settings_set_parser.add_argument("value", help="Setting value")

    return parser


def main() -> int:
    """Main entry point."""
    parser = create_parser()
    args = parser.parse_args()

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    if not args.command:
        parser.print_help()
        return 0

    groups = {
        "products": (
            "products_command",
            {"list": cmd_products_list, "add": cmd_products_add, "stock": cmd_products_stock},
        ),
        "orders": (
            "orders_command",
            {
                "list": cmd_orders_list,
                "show": cmd_orders_show,
                "status": cmd_orders_status,
                "export": cmd_orders_export,
                "purge": cmd_orders_purge,
            },
        ),
        "settings": (
            "settings_command",
            {"list": cmd_settings_list, "set": cmd_settings_set},
        ),
    }

    # Handle grouped subcommands
    if args.command in groups:
        dest, handlers = groups[args.command]
        subcommand = getattr(args, dest, None)
        if not subcommand:
            parser.parse_args([args.command, "--help"])
            return 0
        return handlers[subcommand](args)

    commands = {
        "serve": cmd_serve,
        "invoice": cmd_invoice,
    }

    cmd_func = commands.get(args.command)
    if cmd_func:
        return cmd_func(args)

    parser.print_help()
    return 0


if __name__ == "__main__":
    sys.exit(main())
