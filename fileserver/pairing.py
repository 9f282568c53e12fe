"""Connection details and QR code for pairing a phone with the server."""

import base64
import logging
import socket
from io import BytesIO

import qrcode

logger = logging.getLogger(__name__)


def get_local_ip() -> str:
    """
    Best guess at this machine's LAN address.

    Opening a UDP socket towards a public address sends no packet but makes
    the OS pick the outbound interface.
    """
    s = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
    try:
        s.connect(("8.8.8.8", 80))
        return s.getsockname()[0]
    except OSError:
        return "127.0.0.1"
    finally:
        s.close()


def make_qr_data_url(text: str) -> str:
    qr = qrcode.QRCode(
        version=1,
        error_correction=qrcode.constants.ERROR_CORRECT_L,
        box_size=10,
        border=4,
    )
    qr.add_data(text)
    qr.make(fit=True)

    img = qr.make_image(fill_color="black", back_color="white")
    buffered = BytesIO()
    img.save(buffered, format="PNG")
    return "data:image/png;base64," + base64.b64encode(buffered.getvalue()).decode()


def print_terminal_qr(text: str) -> None:
    qr = qrcode.QRCode(border=1)
    qr.add_data(text)
    qr.make(fit=True)
    qr.print_ascii(invert=True)


def build_connection_info(port: int) -> dict:
    """
    Build the payload served by /api/info.

    Args:
        port: Port the server is listening on

    Returns:
        Dict with url, ip, port and qrCode (PNG data URL)
    """
    ip_address = get_local_ip()
    url = f"http://{ip_address}:{port}"
    return {
        "url": url,
        "ip": ip_address,
        "port": port,
        "qrCode": make_qr_data_url(url),
    }
