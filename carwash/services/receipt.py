"""
Receipt Generation Service.
Creates job payment receipts as PDFs using ReportLab.
"""

from decimal import Decimal
from pathlib import Path

from reportlab.lib import colors
from reportlab.lib.pagesizes import A5
from reportlab.lib.styles import getSampleStyleSheet, ParagraphStyle
from reportlab.lib.units import mm
from reportlab.platypus import (
    SimpleDocTemplate,
    Paragraph,
    Spacer,
    Table,
    TableStyle,
)
from reportlab.lib.enums import TA_RIGHT, TA_CENTER

from carwash.core.config import settings
from carwash.models.base import utcnow
from carwash.models.job import Job
from carwash.models.payment import PaymentMethod, PaymentStatus


METHOD_LABELS = {
    PaymentMethod.CASH: "Cash",
    PaymentMethod.MPESA: "M-Pesa",
    PaymentMethod.CARD: "Card",
    PaymentMethod.LOYALTY_POINTS: "Loyalty points",
}


class ReceiptService:
    """Service for generating job receipts."""

    def __init__(self, storage_path: str | None = None):
        self.storage_path = Path(storage_path or settings.RECEIPTS_PATH)
        self.storage_path.mkdir(parents=True, exist_ok=True)

        self.primary_color = colors.HexColor("#0E7490")
        self.gray_color = colors.HexColor("#6B7280")
        self.light_gray = colors.HexColor("#F3F4F6")
        self.border_color = colors.HexColor("#E5E7EB")

    def _get_styles(self):
        """Get custom paragraph styles."""
        styles = getSampleStyleSheet()

        styles.add(ParagraphStyle(
            name='BusinessName',
            parent=styles['Heading1'],
            fontSize=16,
            alignment=TA_CENTER,
            textColor=self.primary_color,
            spaceAfter=2*mm,
        ))
        styles.add(ParagraphStyle(
            name='CenterSmall',
            parent=styles['Normal'],
            fontSize=8,
            alignment=TA_CENTER,
            textColor=self.gray_color,
        ))
        styles.add(ParagraphStyle(
            name='SectionHeader',
            parent=styles['Heading2'],
            fontSize=10,
            textColor=self.primary_color,
            spaceBefore=3*mm,
            spaceAfter=1*mm,
        ))
        styles.add(ParagraphStyle(
            name='NormalText',
            parent=styles['Normal'],
            fontSize=9,
        ))
        styles.add(ParagraphStyle(
            name='RightAlign',
            parent=styles['Normal'],
            fontSize=9,
            alignment=TA_RIGHT,
        ))

        return styles

    def _format_currency(self, amount: Decimal) -> str:
        return f"{settings.CURRENCY} {amount:,.2f}"

    def build_elements(self, job: Job) -> list:
        """Flowables making up the receipt for ``job``."""
        styles = self._get_styles()
        elements = []

        # Header
        elements.append(Paragraph(f"<b>{settings.BUSINESS_NAME}</b>", styles['BusinessName']))
        elements.append(Paragraph(settings.BUSINESS_ADDRESS, styles['CenterSmall']))
        elements.append(Paragraph(f"Tel: {settings.BUSINESS_PHONE}", styles['CenterSmall']))
        elements.append(Spacer(1, 5*mm))

        info = [
            ["Receipt", job.job_number],
            ["Date", job.check_in_time.strftime("%d/%m/%Y %H:%M")],
            ["Vehicle", job.vehicle.registration_no],
        ]
        if job.customer:
            info.append(["Customer", job.customer.name])
        info_table = Table(info, colWidths=[30*mm, 88*mm])
        info_table.setStyle(TableStyle([
            ('FONTSIZE', (0, 0), (-1, -1), 9),
            ('TEXTCOLOR', (0, 0), (0, -1), self.gray_color),
        ]))
        elements.append(info_table)

        # Services
        elements.append(Paragraph("SERVICES", styles['SectionHeader']))
        items_data = [["Service", "Qty", "Amount"]]
        for item in job.items:
            items_data.append([
                Paragraph(item.service_name or f"Service {item.service_id}", styles['NormalText']),
                str(item.quantity),
                self._format_currency(item.subtotal),
            ])

        items_table = Table(items_data, colWidths=[70*mm, 15*mm, 33*mm], repeatRows=1)
        items_table.setStyle(TableStyle([
            ('BACKGROUND', (0, 0), (-1, 0), self.primary_color),
            ('TEXTCOLOR', (0, 0), (-1, 0), colors.white),
            ('FONTNAME', (0, 0), (-1, 0), 'Helvetica-Bold'),
            ('FONTSIZE', (0, 0), (-1, -1), 9),
            ('ALIGN', (1, 0), (-1, -1), 'RIGHT'),
            ('VALIGN', (0, 0), (-1, -1), 'MIDDLE'),
            ('LINEBELOW', (0, 1), (-1, -1), 0.5, self.border_color),
        ]))
        elements.append(items_table)
        elements.append(Spacer(1, 3*mm))

        # Totals
        totals_data = [["Subtotal", self._format_currency(job.subtotal)]]
        if job.discount_amount > 0:
            totals_data.append(["Discount", f"- {self._format_currency(job.discount_amount)}"])
        if job.tax_amount > 0:
            totals_data.append(["Tax", self._format_currency(job.tax_amount)])
        totals_data.append(["Total", self._format_currency(job.total_amount)])

        totals_table = Table(totals_data, colWidths=[85*mm, 33*mm])
        totals_table.setStyle(TableStyle([
            ('ALIGN', (0, 0), (-1, -1), 'RIGHT'),
            ('FONTSIZE', (0, 0), (-1, -1), 9),
            ('FONTNAME', (0, -1), (-1, -1), 'Helvetica-Bold'),
            ('LINEABOVE', (0, -1), (-1, -1), 1, self.primary_color),
            ('BACKGROUND', (0, -1), (-1, -1), self.light_gray),
        ]))
        elements.append(totals_table)

        # Payments
        completed = [p for p in job.payments if p.status == PaymentStatus.COMPLETED]
        if completed:
            elements.append(Paragraph("PAYMENTS", styles['SectionHeader']))
            payments_data = []
            for payment in completed:
                label = METHOD_LABELS.get(payment.payment_method, payment.payment_method.value)
                reference = payment.mpesa_receipt_number or payment.reference_number
                if reference:
                    label = f"{label} ({reference})"
                payments_data.append([label, self._format_currency(payment.amount)])
            payments_data.append(["Balance due", self._format_currency(job.balance_due)])

            payments_table = Table(payments_data, colWidths=[85*mm, 33*mm])
            payments_table.setStyle(TableStyle([
                ('ALIGN', (1, 0), (1, -1), 'RIGHT'),
                ('FONTSIZE', (0, 0), (-1, -1), 9),
                ('FONTNAME', (0, -1), (-1, -1), 'Helvetica-Bold'),
            ]))
            elements.append(payments_table)

        if job.customer and job.customer.loyalty_points:
            elements.append(Spacer(1, 3*mm))
            elements.append(Paragraph(
                f"Loyalty points balance: {job.customer.loyalty_points}",
                styles['CenterSmall'],
            ))

        elements.append(Spacer(1, 6*mm))
        elements.append(Paragraph(
            f"<i>Thank you for choosing {settings.BUSINESS_NAME}. "
            f"Printed {utcnow().strftime('%d/%m/%Y %H:%M')} UTC</i>",
            styles['CenterSmall'],
        ))

        return elements

    async def generate_job_receipt(self, job: Job) -> str:
        """
        Generate the receipt PDF for a job.

        Args:
            job: Job with items and payments loaded

        Returns:
            Path to generated PDF file
        """
        filepath = self.storage_path / f"receipt_{job.job_number}.pdf"

        doc = SimpleDocTemplate(
            str(filepath),
            pagesize=A5,
            rightMargin=12*mm,
            leftMargin=12*mm,
            topMargin=12*mm,
            bottomMargin=12*mm,
            title=f"Receipt {job.job_number}",
        )
        doc.build(self.build_elements(job))

        return str(filepath)
