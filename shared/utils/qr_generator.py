"""Utilidades para generar imágenes QR de tickets"""
import base64
import io

import qrcode


def generate_qr_png_base64(qr_data: str) -> str:
    """
    Generar imagen QR como PNG en base64

    Args:
        qr_data: Contenido del QR (JSON con ticketId y firma)

    Returns:
        String base64 de la imagen PNG, o "" si no hay datos
    """
    if not qr_data:
        return ""

    qr = qrcode.QRCode(
        version=None,
        error_correction=qrcode.constants.ERROR_CORRECT_M,
        box_size=10,
        border=4,
    )
    qr.add_data(qr_data)
    qr.make(fit=True)
    img = qr.make_image(fill_color="black", back_color="white")

    buffer = io.BytesIO()
    img.save(buffer, format="PNG")
    return base64.b64encode(buffer.getvalue()).decode("utf-8")


def qr_data_url(qr_data: str) -> str:
    """Data URI listo para usar en <img src=...>"""
    return f"data:image/png;base64,{generate_qr_png_base64(qr_data)}"
