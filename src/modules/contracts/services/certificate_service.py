"""
Signing certificate: a printable PDF summarizing who signed what, when and from where.
"""
import io
import logging
from typing import Optional
from xml.sax.saxutils import escape

from reportlab.lib import colors
from reportlab.lib.pagesizes import letter
from reportlab.lib.styles import ParagraphStyle, getSampleStyleSheet
from reportlab.lib.units import inch
from reportlab.platypus import Image, Paragraph, SimpleDocTemplate, Spacer, Table, TableStyle

from modules.contracts.models.field_values import display_value

logger = logging.getLogger(__name__)

THUMBNAIL_WIDTH = 1.6 * inch
THUMBNAIL_HEIGHT = 0.6 * inch


def certificate_filename(contract) -> str:
    return f"signature-certificate-{contract.id}.pdf"


def _fmt(value) -> str:
    if value is None:
        return "-"
    if hasattr(value, "strftime"):
        return value.strftime("%Y-%m-%d %H:%M:%S UTC")
    return str(value)


class CertificateService:
    def __init__(self, asset_store=None):
        self.asset_store = asset_store
        self.brand_color = colors.HexColor("#4f46e5")
        self.light_gray = colors.HexColor("#f1f5f9")

    def generate(self, contract) -> bytes:
        logger.info(f"Generating signing certificate for contract {contract.id}")
        buffer = io.BytesIO()
        doc = SimpleDocTemplate(
            buffer,
            pagesize=letter,
            rightMargin=0.75 * inch,
            leftMargin=0.75 * inch,
            topMargin=0.75 * inch,
            bottomMargin=0.75 * inch,
            title=f"Signature Certificate - {contract.file_name}",
        )
        styles = getSampleStyleSheet()
        title = ParagraphStyle("CertTitle", parent=styles["Heading1"], textColor=self.brand_color)
        heading = styles["Heading2"]
        small = ParagraphStyle("Small", parent=styles["Normal"], fontSize=8, leading=10)

        story = [
            Paragraph("Electronic Signature Certificate", title),
            Spacer(1, 0.1 * inch),
        ]

        # Contract identity
        story.append(Paragraph("Contract", heading))
        story.append(self._table([
            ["Contract ID", contract.id],
            ["Event ID", contract.event_id],
            ["Vendor ID", contract.vendor_id],
            ["Document", contract.file_name],
            ["Source URL", Paragraph(escape(contract.contract_url or "-"), small)],
            ["Status", contract.workflow_status.value],
            ["Uploaded", _fmt(contract.first_uploaded)],
            ["Sent", _fmt(contract.sent_at)],
            ["Completed", _fmt(contract.completed_at)],
        ]))

        # Vendor signature
        vendor = contract.vendor_signature
        if vendor is not None:
            story.append(Paragraph("Vendor signature", heading))
            story.append(self._table([
                ["Name", vendor.vendor_name],
                ["Email", vendor.vendor_email],
                ["Signed", _fmt(vendor.signed_at)],
                ["Signature", self._thumbnail(vendor.storage_key, vendor.url, small)],
            ]))

        # Signers
        story.append(Paragraph("Signers", heading))
        rows = [["Name / email", "Role", "Status", "Invited", "Accessed", "Signed", "IP / agent"]]
        for s in contract.signers:
            rows.append([
                Paragraph(f"{escape(s.name or '-')}<br/>{escape(s.email or '-')}", small),
                s.role.value,
                s.status.value,
                Paragraph(_fmt(s.invited_at), small),
                Paragraph(_fmt(s.accessed_at), small),
                Paragraph(_fmt(s.signed_at), small),
                Paragraph(f"{escape(s.ip_address or '-')}<br/>{escape(s.user_agent or '-')}", small),
            ])
        story.append(self._table(rows, (1.5, 0.6, 0.7, 1.0, 1.0, 1.0, 1.2), header=True))

        # Signed fields
        story.append(Paragraph("Signed fields", heading))
        rows = [["Field", "Type", "Signer", "Signed", "Value"]]
        for f in contract.signature_fields:
            if not f.signed:
                continue
            if f.is_image and f.value is not None:
                shown = self._thumbnail(f.value.asset.storage_key, f.value.asset.url, small)
            else:
                shown = Paragraph(escape(display_value(f.value) or "-"), small)
            rows.append([Paragraph(escape(f.label), small), f.type.value, f.signer_role.value,
                         Paragraph(_fmt(f.signed_at), small), shown])
        story.append(self._table(rows, (1.6, 0.8, 0.7, 1.2, 2.7), header=True))

        # Audit trail
        story.append(Paragraph("Audit trail", heading))
        rows = [["#", "Time", "Action", "Actor", "IP"]]
        for e in contract.audit_trail:
            rows.append([str(e.sequence), Paragraph(_fmt(e.timestamp), small), e.action,
                         Paragraph(escape(f"{e.actor} ({e.actor_role})"), small), e.ip_address or "-"])
        story.append(self._table(rows, (0.4, 1.3, 1.7, 2.4, 1.2), header=True))

        doc.build(story)
        return buffer.getvalue()

    def _thumbnail(self, storage_key: Optional[str], url: str, style):
        """Inline image of a stored asset; the URL when it cannot be read."""
        if self.asset_store is not None and storage_key:
            try:
                data = self.asset_store.read(storage_key)
                return Image(io.BytesIO(data), width=THUMBNAIL_WIDTH, height=THUMBNAIL_HEIGHT,
                             kind="proportional")
            except Exception as e:
                logger.warning(f"Could not embed signature image {storage_key}: {e}")
        return Paragraph(escape(url or "-"), style)

    def _table(self, rows, col_widths=None, header: bool = False) -> Table:
        table = Table(rows, colWidths=[w * inch for w in col_widths or (1.6, 5.4)], hAlign="LEFT")
        commands = [
            ("FONTSIZE", (0, 0), (-1, -1), 8),
            ("VALIGN", (0, 0), (-1, -1), "TOP"),
            ("GRID", (0, 0), (-1, -1), 0.25, colors.lightgrey),
        ]
        if header:
            commands += [
                ("BACKGROUND", (0, 0), (-1, 0), self.light_gray),
                ("FONTNAME", (0, 0), (-1, 0), "Helvetica-Bold"),
            ]
        else:
            commands.append(("FONTNAME", (0, 0), (0, -1), "Helvetica-Bold"))
        table.setStyle(TableStyle(commands))
        return table
