"""PDF rendering for quotes and invoices."""
from datetime import datetime
from io import BytesIO
from typing import Any, Dict, List, Optional

from reportlab.lib.pagesizes import A4
from reportlab.lib import colors
from reportlab.lib.units import inch
from reportlab.platypus import SimpleDocTemplate, Table, TableStyle, Paragraph, Spacer
from reportlab.lib.styles import getSampleStyleSheet, ParagraphStyle
from reportlab.lib.enums import TA_CENTER
from xml.sax.saxutils import escape

from lumenr.utils.formatters import money, date_display


def _business_header(business_info: Dict[str, Any], header_style) -> List:
    elements = []
    if business_info.get('name'):
        elements.append(Paragraph(f"<b>{escape(business_info['name'])}</b>", header_style))
    if business_info.get('address'):
        elements.append(Paragraph(escape(business_info['address']), header_style))

    contact_parts = []
    if business_info.get('phone'):
        contact_parts.append(f"Tel: {business_info['phone']}")
    if business_info.get('email'):
        contact_parts.append(f"Email: {business_info['email']}")
    if contact_parts:
        elements.append(Paragraph(escape(" | ".join(contact_parts)), header_style))
    return elements


def render_document_pdf(
    title: str,
    document: Any,
    business_info: Dict[str, Any],
    meta_rows: List[List[str]],
    footer_text: Optional[str] = None,
) -> BytesIO:
    """
    Render a quote or invoice.

    ``document`` needs ``items``, ``subtotal``, ``tax``, ``total``, ``notes``
    and ``client``; totals are printed as stored, never recomputed here.
    """
    currency = business_info.get('currency', 'USD')
    buffer = BytesIO()
    doc = SimpleDocTemplate(
        buffer,
        pagesize=A4,
        rightMargin=0.75*inch,
        leftMargin=0.75*inch,
        topMargin=0.75*inch,
        bottomMargin=0.75*inch,
        title=title,
    )

    elements = []
    styles = getSampleStyleSheet()

    title_style = ParagraphStyle(
        'DocumentTitle',
        parent=styles['Heading1'],
        fontSize=24,
        textColor=colors.HexColor('#2C3E50'),
        spaceAfter=12,
        alignment=TA_CENTER,
        fontName='Helvetica-Bold'
    )

    header_style = ParagraphStyle(
        'DocumentHeader',
        parent=styles['Normal'],
        fontSize=10,
        textColor=colors.HexColor('#7F8C8D'),
        alignment=TA_CENTER,
        spaceAfter=6
    )

    cell_style = ParagraphStyle('Cell', parent=styles['Normal'], fontSize=9, leading=11)

    # 1. Title and business header
    elements.append(Paragraph(escape(title.upper()), title_style))
    elements.extend(_business_header(business_info, header_style))
    elements.append(Spacer(1, 0.3*inch))

    # 2. Metadata and client
    client = getattr(document, 'client', None)
    info_rows = list(meta_rows)
    if client is not None:
        info_rows.append(['Client:', client.company or client.name])
        info_rows.append(['Email:', client.email])

    info_table = Table(info_rows, colWidths=[2*inch, 3.5*inch])
    info_table.setStyle(TableStyle([
        ('ALIGN', (0, 0), (0, -1), 'RIGHT'),
        ('ALIGN', (1, 0), (1, -1), 'LEFT'),
        ('FONTNAME', (0, 0), (0, -1), 'Helvetica-Bold'),
        ('FONTSIZE', (0, 0), (-1, -1), 10),
        ('TEXTCOLOR', (0, 0), (-1, -1), colors.HexColor('#34495E')),
    ]))
    elements.append(info_table)
    elements.append(Spacer(1, 0.3*inch))

    # 3. Items table
    table_data = [['Item', 'Type', 'Qty', 'Unit Price', 'Line Total']]
    for item in document.items:
        label = escape(item.name or '(unnamed)')
        if item.description:
            label += f"<br/><font size=8 color='#7F8C8D'>{escape(item.description)}</font>"
        table_data.append([
            Paragraph(label, cell_style),
            item.kind.value.capitalize(),
            str(item.quantity),
            money(item.unit_price, currency),
            money(item.line_total, currency),
        ])

    items_table = Table(table_data, colWidths=[3*inch, 0.8*inch, 0.6*inch, 1.1*inch, 1.2*inch])
    items_table.setStyle(TableStyle([
        ('BACKGROUND', (0, 0), (-1, 0), colors.HexColor('#3498DB')),
        ('TEXTCOLOR', (0, 0), (-1, 0), colors.whitesmoke),
        ('ALIGN', (0, 0), (-1, 0), 'CENTER'),
        ('FONTNAME', (0, 0), (-1, 0), 'Helvetica-Bold'),
        ('BOTTOMPADDING', (0, 0), (-1, 0), 12),
        ('VALIGN', (0, 1), (-1, -1), 'TOP'),
        ('ALIGN', (1, 1), (2, -1), 'CENTER'),
        ('ALIGN', (3, 1), (4, -1), 'RIGHT'),
        ('GRID', (0, 0), (-1, -1), 0.5, colors.HexColor('#BDC3C7')),
        ('ROWBACKGROUNDS', (0, 1), (-1, -1), [colors.white, colors.HexColor('#ECF0F1')]),
    ]))
    elements.append(items_table)
    elements.append(Spacer(1, 0.2*inch))

    # 4. Totals
    totals_table = Table([
        ['Subtotal:', money(document.subtotal, currency)],
        ['Tax:', money(document.tax, currency)],
        ['TOTAL:', money(document.total, currency)],
    ], colWidths=[5.5*inch, 1.2*inch])
    totals_table.setStyle(TableStyle([
        ('ALIGN', (0, 0), (-1, -1), 'RIGHT'),
        ('FONTSIZE', (0, 0), (-1, 1), 10),
        ('FONTNAME', (0, 2), (-1, 2), 'Helvetica-Bold'),
        ('FONTSIZE', (0, 2), (-1, 2), 14),
        ('TEXTCOLOR', (0, 2), (-1, 2), colors.HexColor('#27AE60')),
        ('BACKGROUND', (0, 2), (-1, 2), colors.HexColor('#E8F8F5')),
        ('BOX', (0, 2), (-1, 2), 2, colors.HexColor('#27AE60')),
    ]))
    elements.append(totals_table)
    elements.append(Spacer(1, 0.4*inch))

    # 5. Footer
    footer_style = ParagraphStyle('Footer', parent=styles['Normal'], fontSize=9, textColor=colors.HexColor('#95A5A6'), alignment=TA_CENTER)
    footer = footer_text or ''
    if document.notes:
        footer += f"<br/><br/><b>Notes:</b> {escape(document.notes)}"
    if footer:
        elements.append(Paragraph(footer, footer_style))

    doc.build(elements)
    buffer.seek(0)
    return buffer


def render_quote_pdf(quote, business_info: Dict[str, Any]) -> BytesIO:
    meta_rows = [
        ['Quote #:', f"Q-{quote.id:05d}"],
        ['Issued:', date_display(quote.created_at or datetime.now())],
        ['Status:', quote.status.capitalize()],
    ]
    valid_days = business_info.get('valid_days')
    footer = "<b>IMPORTANT:</b><br/>This quote is not an invoice."
    if valid_days:
        footer += f"<br/>Valid for {valid_days} days."
    return render_document_pdf('Quote', quote, business_info, meta_rows, footer)


def render_invoice_pdf(invoice, business_info: Dict[str, Any]) -> BytesIO:
    meta_rows = [
        ['Invoice #:', f"INV-{invoice.id:05d}"],
        ['Issued:', date_display(invoice.created_at or datetime.now())],
        ['Due:', date_display(invoice.due_date)],
        ['Status:', invoice.status.replace('_', ' ').capitalize()],
    ]
    if invoice.quote_id:
        meta_rows.append(['Quote #:', f"Q-{invoice.quote_id:05d}"])
    if invoice.paid_at:
        meta_rows.append(['Paid:', date_display(invoice.paid_at)])
    footer = business_info.get('invoice_footer') or "Thank you for your business."
    return render_document_pdf('Invoice', invoice, business_info, meta_rows, escape(footer))
