"""
Order receipt PDF.
Content: shop name, receipt number, date, customer, items table (SN, Item, Price, Qty, Total)
with toppings under each item, subtotal, discount (percent, amount, note) and total.
All figures come from the order's snapshot fields, so a reprint matches the original sale.
"""
from io import BytesIO

from django.conf import settings
from django.utils import timezone
from reportlab.lib.pagesizes import A4
from reportlab.pdfgen import canvas as pdf_canvas


def receipt_number(order):
    return f'ORD-{order.id:06d}'


def _fmt(amount):
    currency = getattr(settings, 'TILLBOOK_CURRENCY', 'Rs.')
    return f'{currency}{amount}'


def _percent(pct):
    """Decimal('12.50') -> '12.5', Decimal('10.00') -> '10'."""
    s = f'{pct:f}'
    return s.rstrip('0').rstrip('.') if '.' in s else s


def order_bill_pdf_bytes(order):
    """
    Generate PDF bytes for an order receipt.
    order: Order with prefetch_related('items__product', 'items__modifiers').
    """
    buf = BytesIO()
    c = pdf_canvas.Canvas(buf, pagesize=A4)
    width, height = A4
    y = height - 40
    left = 50
    right_col = 350

    c.setFont('Helvetica-Bold', 14)
    c.drawString(left, y, getattr(settings, 'TILLBOOK_SHOP_NAME', 'Tillbook'))

    c.setFont('Helvetica-Bold', 11)
    c.drawString(right_col, height - 40, f'Receipt: {receipt_number(order)}')
    if order.created_at:
        c.setFont('Helvetica', 9)
        created = timezone.localtime(order.created_at)
        c.drawString(right_col, height - 54, f'Date: {created.strftime("%Y-%m-%d %H:%M")}')

    y -= 24
    c.setFont('Helvetica', 9)
    c.drawString(left, y, f'Customer: {order.customer_name}')
    y -= 12
    if order.customer_phone:
        c.drawString(left, y, f'Phone: {order.customer_phone}')
        y -= 12
    y -= 14

    c.setFont('Helvetica-Bold', 9)
    c.drawString(left, y, 'SN')
    c.drawString(left + 30, y, 'Item')
    c.drawString(280, y, 'Price')
    c.drawString(340, y, 'Qty')
    c.drawString(400, y, 'Total')
    y -= 14
    c.setFont('Helvetica', 9)

    for sn, item in enumerate(order.items.all(), start=1):
        c.drawString(left, y, str(sn))
        c.drawString(left + 30, y, (item.product.name or 'Item')[:35])
        c.drawString(280, y, _fmt(item.unit_price))
        c.drawString(340, y, str(item.quantity))
        c.drawString(400, y, _fmt(item.line_total))
        y -= 12
        for mod in item.modifiers.all():
            c.drawString(left + 40, y, f'+ {mod.name_at_time[:30]} ({_fmt(mod.price_at_time)})')
            y -= 11
        if y < 140:
            c.showPage()
            y = height - 40
            c.setFont('Helvetica', 9)

    y -= 8
    c.drawString(right_col, y, f'Subtotal: {_fmt(order.subtotal)}')
    y -= 12
    if order.discount_percent > 0:
        c.drawString(right_col, y, f'Discount ({_percent(order.discount_percent)}%): -{_fmt(order.discount_amount)}')
        y -= 12
        if order.discount_note:
            c.drawString(right_col, y, f'Note: {order.discount_note[:40]}')
            y -= 12
    c.setFont('Helvetica-Bold', 10)
    c.drawString(right_col, y, f'Total: {_fmt(order.amount)}')

    c.showPage()
    c.save()
    buf.seek(0)
    return buf.getvalue()
