# backend/services/file_utils.py
import os
import uuid
from io import BytesIO
from flask import current_app, make_response
from werkzeug.utils import secure_filename
from PIL import Image, ImageOps, UnidentifiedImageError
from reportlab.lib.pagesizes import letter
from reportlab.platypus import SimpleDocTemplate, Paragraph, Spacer, Table, TableStyle
from reportlab.lib.styles import getSampleStyleSheet
from reportlab.lib.units import inch
from reportlab.lib import colors
import logging

from middleware.errors import UploadError
from services.date_utils import format_local_date

logger = logging.getLogger(__name__)

IMAGE_EXTENSIONS = {'png', 'jpg', 'jpeg', 'gif', 'webp'}
DOCUMENT_EXTENSIONS = IMAGE_EXTENSIONS | {'pdf', 'doc', 'docx', 'xls', 'xlsx', 'txt', 'csv', 'dwg'}


def allowed_file(filename, allowed_extensions):
    """Case-insensitive file extension check"""
    if not filename or '.' not in filename:
        return False

    extension = filename.rsplit('.', 1)[1].lower()
    return extension in allowed_extensions


def is_image_upload(file_storage):
    mimetype = (file_storage.mimetype or '').lower()
    return mimetype.startswith('image/') or allowed_file(file_storage.filename, IMAGE_EXTENSIONS)


def _upload_size(file_storage):
    stream = file_storage.stream
    stream.seek(0, os.SEEK_END)
    size = stream.tell()
    stream.seek(0)
    return size


def _verify_image(file_storage):
    try:
        with Image.open(file_storage.stream) as img:
            img.verify()
    except (UnidentifiedImageError, OSError, SyntaxError) as e:
        logger.warning(f"Rejected invalid image upload {file_storage.filename}: {e}")
        raise UploadError('Only image files are allowed')
    finally:
        file_storage.stream.seek(0)


def generate_thumbnail(original_path, thumbnail_path, size=(300, 300)):
    """Write a JPEG thumbnail next to an uploaded image. Returns None on failure."""
    try:
        with Image.open(original_path) as img:
            # Respect EXIF orientation
            img = ImageOps.exif_transpose(img)

            # Flatten transparency onto white
            if img.mode in ('RGBA', 'LA', 'P'):
                background = Image.new('RGB', img.size, (255, 255, 255))
                if img.mode == 'P':
                    img = img.convert('RGBA')
                background.paste(img, mask=img.getchannel('A'))
                img = background
            elif img.mode != 'RGB':
                img = img.convert('RGB')

            img.thumbnail(size, Image.Resampling.LANCZOS)
            img.save(thumbnail_path, 'JPEG', quality=85, optimize=True)

        logger.info(f"Generated thumbnail: {thumbnail_path}")
        return thumbnail_path

    except (OSError, ValueError) as e:
        logger.error(f"Error generating thumbnail for {original_path}: {str(e)}")
        return None


def save_upload(file_storage, subdir, prefix='file', max_bytes=None, image_only=False,
                allowed_extensions=None, thumbnail=False):
    """
    Validate and store a multipart upload under UPLOAD_FOLDER/<subdir>.

    Files are renamed to ``<prefix>-<uuid>.<ext>`` so client names never
    collide or escape the folder.

    Returns:
        str: the public path, e.g. ``/uploads/materials/material-1f2e....jpg``

    Raises:
        UploadError: missing file, bad extension, too large or not an image
    """
    if file_storage is None or not file_storage.filename:
        raise UploadError('No file provided')

    filename = secure_filename(file_storage.filename)
    if image_only:
        allowed_extensions = IMAGE_EXTENSIONS
    if allowed_extensions and not allowed_file(filename, allowed_extensions):
        raise UploadError(f"File type not allowed: {file_storage.filename}")

    size = _upload_size(file_storage)
    if max_bytes and size > max_bytes:
        raise UploadError(
            f"{file_storage.filename} exceeds the {max_bytes // (1024 * 1024)}MB limit", 413)

    if image_only:
        _verify_image(file_storage)

    extension = filename.rsplit('.', 1)[1].lower() if '.' in filename else 'bin'
    stored_name = f"{prefix}-{uuid.uuid4().hex}.{extension}"

    folder = os.path.join(current_app.config['UPLOAD_FOLDER'], subdir)
    os.makedirs(folder, exist_ok=True)
    path = os.path.join(folder, stored_name)
    file_storage.save(path)
    logger.info(f"Stored upload {file_storage.filename} as {path} ({size} bytes)")

    if thumbnail:
        generate_thumbnail(path, os.path.join(folder, f"thumb_{stored_name.rsplit('.', 1)[0]}.jpg"))

    return f"/uploads/{subdir}/{stored_name}"


def save_uploads(files, subdir, prefix='file', **kwargs):
    """Store several uploads, removing the ones already written if any fails"""
    saved = []
    try:
        for file_storage in files:
            saved.append(save_upload(file_storage, subdir, prefix, **kwargs))
    except UploadError:
        for url in saved:
            remove_upload(url)
        raise
    return saved


def remove_upload(url):
    """Delete a stored upload given its public /uploads/... path"""
    if not url or not url.startswith('/uploads/'):
        return False
    relative = url[len('/uploads/'):]
    path = os.path.join(current_app.config['UPLOAD_FOLDER'], *relative.split('/'))
    try:
        os.remove(path)
        return True
    except FileNotFoundError:
        return False
    except OSError as e:
        logger.warning(f"Could not remove upload {path}: {e}")
        return False


def generate_bid_comparison_report(project, bids):
    """Generate a PDF comparing every bid received on a project"""
    try:
        buffer = BytesIO()

        doc = SimpleDocTemplate(
            buffer,
            pagesize=letter,
            rightMargin=54,
            leftMargin=54,
            topMargin=72,
            bottomMargin=72
        )

        elements = []

        styles = getSampleStyleSheet()
        title_style = styles['Heading1']
        heading2_style = styles['Heading2']
        normal_style = styles['Normal']

        elements.append(Paragraph(f"Bid Comparison: {project.title}", title_style))
        elements.append(Spacer(1, 0.25*inch))

        current_date = format_local_date()
        elements.append(Paragraph(f"Date: {current_date}", normal_style))
        elements.append(Paragraph(f"Location: {project.location}", normal_style))
        elements.append(Paragraph(f"Budget: ${project.budget:,.2f}", normal_style))
        elements.append(Paragraph(f"Status: {project.status.replace('_', ' ').title()}", normal_style))
        elements.append(Spacer(1, 0.25*inch))

        elements.append(Paragraph("Bids", heading2_style))

        bid_data = [["Bidder", "Amount", "Materials", "Labor", "Timeline", "Status"]]
        for bid in bids:
            bidder_name = bid.bidder.get_full_name() or bid.bidder.email if bid.bidder else 'N/A'
            bid_data.append([
                bidder_name,
                f"${bid.amount:,.2f}",
                f"${bid.material_costs:,.2f}",
                f"${bid.labor_costs:,.2f}",
                f"{bid.timeline} days",
                bid.status.title()
            ])

        amounts = [bid.amount for bid in bids]
        lowest = min(amounts) if amounts else 0
        average = sum(amounts) / len(amounts) if amounts else 0

        bid_table = Table(bid_data, repeatRows=1)
        bid_table.setStyle(TableStyle([
            ('BACKGROUND', (0, 0), (-1, 0), colors.lightgrey),
            ('TEXTCOLOR', (0, 0), (-1, 0), colors.black),
            ('ALIGN', (0, 0), (-1, 0), 'CENTER'),
            ('FONTNAME', (0, 0), (-1, 0), 'Helvetica-Bold'),
            ('BOTTOMPADDING', (0, 0), (-1, 0), 12),
            ('GRID', (0, 0), (-1, -1), 1, colors.black)
        ]))
        elements.append(bid_table)
        elements.append(Spacer(1, 0.25*inch))

        elements.append(Paragraph("Summary", heading2_style))
        summary_data = [
            ["Description", "Value"],
            ["Number of Bids", str(len(bids))],
            ["Lowest Bid", f"${lowest:,.2f}"],
            ["Average Bid", f"${average:,.2f}"]
        ]
        summary_table = Table(summary_data)
        summary_table.setStyle(TableStyle([
            ('BACKGROUND', (0, 0), (1, 0), colors.lightgrey),
            ('FONTNAME', (0, 0), (1, 0), 'Helvetica-Bold'),
            ('GRID', (0, 0), (-1, -1), 1, colors.black)
        ]))
        elements.append(summary_table)
        elements.append(Spacer(1, 0.25*inch))

        elements.append(Paragraph(f"Report generated on {current_date}", normal_style))

        doc.build(elements)
        buffer.seek(0)

        response = make_response(buffer.getvalue())
        response.headers['Content-Type'] = 'application/pdf'
        response.headers['Content-Disposition'] = f'attachment; filename=bid_comparison_{project.id}.pdf'

        return response

    except Exception as e:
        logger.error(f"Error generating bid comparison report: {str(e)}")
        raise
