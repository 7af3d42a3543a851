"""Render small synthetic French documents for manual end-to-end runs.

Each dataset becomes a PNG page and a one-page PDF under the output
directory. All names, numbers and addresses are fictitious.

    python scripts/generate_fake_documents.py data/in
"""

import os
import sys
from datetime import date

from PIL import Image, ImageDraw, ImageFont

PAGE_SIZE = (1240, 1754)  # A4 at 150 dpi
LEFT = 120
TOP = 140
LEADING = 48


def _font(size: int):
    try:
        return ImageFont.truetype("DejaVuSans.ttf", size)
    except OSError:
        return ImageFont.load_default(size=size)


def render_page(lines, font_size: int = 30) -> Image.Image:
    page = Image.new("RGB", PAGE_SIZE, "white")
    draw = ImageDraw.Draw(page)
    font = _font(font_size)
    y = TOP
    for line in lines:
        draw.text((LEFT, y), line, fill="black", font=font)
        y += LEADING
    return page


def main(output_dir: str = "data/in"):
    os.makedirs(output_dir, exist_ok=True)
    today = date.today().strftime("%d/%m/%Y")

    datasets = {
        "fiche_salarie": [
            "Fiche salarié",
            f"Date : {today}",
            "Nom : Marie Dupont",
            "N° sécurité sociale : 2 85 07 75 123 456 78",
            "Email : marie.dupont@example.fr",
            "Téléphone : 06 12 34 56 78",
            "Adresse : 12 rue de la Paix, 75002 Paris",
        ],
        "facture": [
            "Facture FAC-2024-0042",
            f"Émise le {today}",
            "Client : Hélène Martin",
            "IBAN : FR76 3000 6000 0112 3456 7890 189",
            "SIRET : 123 456 789 00012",
            "TVA : FR12345678901",
            "Montant TTC : 1 245,77 €",
        ],
        "courrier": [
            "Objet : demande de remboursement",
            "Madame Chloé Lefèvre",
            "8 avenue Jean Jaurès, 69007 Lyon",
            "Contact : chloe.lefevre@exemple.com, tel 0478123456",
            "Carte : 4111 1111 1111 1111",
        ],
    }

    for stem, lines in datasets.items():
        page = render_page(lines)
        page.save(os.path.join(output_dir, f"{stem}.png"))
        page.save(os.path.join(output_dir, f"{stem}.pdf"), resolution=150.0)
        page.close()


if __name__ == "__main__":
    main(*sys.argv[1:2])
