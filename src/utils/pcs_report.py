"""
Relatório PCS em PDF.

A diagramação é feita em duas etapas: `ReportPaginator.layout` calcula as
páginas como listas de operações de desenho (coordenadas em mm, medidas a
partir do topo da página) e `ReportPaginator.render` desenha essas
operações num canvas do reportlab.
"""
import re
from dataclasses import dataclass, field
from datetime import datetime
from io import BytesIO
from typing import Optional

from reportlab.lib.colors import Color
from reportlab.lib.units import mm
from reportlab.lib.utils import simpleSplit
from reportlab.pdfgen import canvas

from utils.date_manager import to_frontend_str, to_long_ptbr
from utils.pcs_board import CATEGORIES, CATEGORY_NAMES

PAGE_WIDTH = 210
PAGE_HEIGHT = 297

PRIMARY = (137, 185, 182)
SECONDARY = (28, 38, 50)
ACCENT = (255, 237, 218)
BLACK = (0, 0, 0)
WHITE = (255, 255, 255)

FONT = 'Helvetica'
FONT_BOLD = 'Helvetica-Bold'
GLYPH_FONT = 'ZapfDingbats'
GLYPH_DONE = '4'   # ✔
GLYPH_OPEN = 'm'   # ❍

HEADER_HEIGHT = 40
MARGIN_LEFT = 20
CONTENT_WIDTH = 170
DESCRIPTION_TOP = 55
DESCRIPTION_LINE_HEIGHT = 5
METADATA_HEIGHT = 25
CATEGORY_BAND_HEIGHT = 12
ENTRY_DESCRIPTION_WIDTH = 160
ENTRY_LINE_HEIGHT = 4
PAGE_BREAK_Y = 250
PAGE_TOP = 30
FOOTER_TOP = 270

DEFAULT_TITLE = "PCS - Planejamento Clínico Segmentado - Almare Odontologia"
DEFAULT_DESCRIPTION = (
    "O PCS – Planejamento Clínico Segmentado – é o jeito mais inteligente, leve e respeitoso "
    "de cuidar do seu sorriso. Nada de tratamentos atropelados ou decisões no escuro. Aqui, cada "
    "etapa do plano é organizada com clareza, prioridades bem definidas e no seu ritmo, respeitando "
    "sua saúde, seu tempo e seu investimento. É um mapa completo, feito sob medida, que guia você "
    "com segurança até o seu melhor sorriso — com transparência, previsibilidade e, acima de tudo, "
    "cuidado de verdade."
)


@dataclass
class ReportData:
    title: str
    description: str
    patient_name: str
    pcs_date: str
    board_version: str = '1.0'
    mindmap_version: str = '1.0'


@dataclass
class DrawOp:
    kind: str  # background | rect | text | glyph
    tag: str
    x: float
    y: float
    w: float = 0
    h: float = 0
    text: str = ''
    font: str = FONT
    size: float = 10
    color: tuple = BLACK
    align: str = 'left'
    entry_id: Optional[str] = None


@dataclass
class Page:
    ops: list = field(default_factory=list)

    def texts(self, tag=None):
        return [op.text for op in self.ops
                if op.kind == 'text' and (tag is None or op.tag == tag)]


def select_entries(entries, selected_ids):
    """Filtra as entradas escolhidas no editor, mantendo a ordem original."""
    wanted = set(selected_ids or [])
    return [e for e in entries if e['id'] in wanted]


def build_report_filename(patient_name, prefix='PCS', now=None):
    now = now or datetime.now()
    safe_name = re.sub(r'\s+', '-', (patient_name or '').strip())
    return f"{prefix}-{safe_name}-{int(now.timestamp() * 1000)}.pdf"


class ReportPaginator:
    def __init__(self, page_width=PAGE_WIDTH, page_height=PAGE_HEIGHT,
                 subtitle='Almare Odontologia', attribution='Almare Odontologia - Sistema PCS'):
        self.page_width = page_width
        self.page_height = page_height
        self.subtitle = subtitle
        self.attribution = attribution

    def wrap(self, text, font, size, width):
        """Quebra o texto em linhas que cabem em `width` mm."""
        if not text:
            return []
        return simpleSplit(text, font, size, width * mm)

    def _new_page(self, pages):
        page = Page()
        page.ops.append(DrawOp('background', 'background', 0, 0,
                               self.page_width, self.page_height, color=ACCENT))
        pages.append(page)
        return page

    def layout(self, report, entries, generated_at=None):
        generated_at = generated_at or datetime.now()
        center = self.page_width / 2
        pages = []
        page = self._new_page(pages)
        ops = page.ops

        # Cabeçalho
        ops.append(DrawOp('rect', 'header', 0, 0, self.page_width, HEADER_HEIGHT, color=PRIMARY))
        ops.append(DrawOp('text', 'header', center, 20, text=report.title, font=FONT_BOLD,
                          size=20, color=SECONDARY, align='center'))
        ops.append(DrawOp('text', 'header', center, 30, text=self.subtitle, size=12,
                          color=SECONDARY, align='center'))

        # Descrição
        lines = self.wrap(report.description, FONT, 10, CONTENT_WIDTH)
        for i, line in enumerate(lines):
            ops.append(DrawOp('text', 'description', MARGIN_LEFT,
                              DESCRIPTION_TOP + i * DESCRIPTION_LINE_HEIGHT, text=line, size=10))
        y = DESCRIPTION_TOP + len(lines) * DESCRIPTION_LINE_HEIGHT + 15

        # Dados do paciente
        ops.append(DrawOp('rect', 'metadata', MARGIN_LEFT, y, CONTENT_WIDTH, METADATA_HEIGHT,
                          color=SECONDARY))
        ops.append(DrawOp('text', 'metadata', MARGIN_LEFT + 5, y + 10,
                          text=f"Paciente: {report.patient_name}", font=FONT_BOLD, size=14, color=WHITE))
        ops.append(DrawOp('text', 'metadata', MARGIN_LEFT + 5, y + 18,
                          text=f"Data do PCS: {report.pcs_date}", size=10, color=WHITE))
        ops.append(DrawOp('text', 'metadata', MARGIN_LEFT + 5, y + 23,
                          text=f"Versão Board: {report.board_version} | "
                               f"Versão Mindmap: {report.mindmap_version}",
                          size=10, color=WHITE))
        y += 40

        if entries:
            ops.append(DrawOp('text', 'section', MARGIN_LEFT, y,
                              text="Planejamento Clínico Segmentado", font=FONT_BOLD, size=16))
            y += 15

        for category in CATEGORIES:
            in_category = sorted((e for e in entries if e['category'] == category),
                                 key=lambda e: e.get('order_index', 0))
            if not in_category:
                continue

            page.ops.append(DrawOp('rect', 'category', MARGIN_LEFT, y - 5, CONTENT_WIDTH,
                                   CATEGORY_BAND_HEIGHT, color=PRIMARY))
            page.ops.append(DrawOp('text', 'category', MARGIN_LEFT + 5, y + 3,
                                   text=CATEGORY_NAMES[category], font=FONT_BOLD, size=12,
                                   color=SECONDARY))
            y += 20

            for entry in in_category:
                if y > PAGE_BREAK_Y:
                    page = self._new_page(pages)
                    y = PAGE_TOP

                page.ops.append(DrawOp('glyph', 'entry-status', MARGIN_LEFT + 5, y,
                                       text=GLYPH_DONE if entry['is_completed'] else GLYPH_OPEN,
                                       font=GLYPH_FONT, size=9, entry_id=entry['id']))
                page.ops.append(DrawOp('text', 'entry-title', MARGIN_LEFT + 9.5, y,
                                       text=entry['title'], font=FONT_BOLD, size=10,
                                       entry_id=entry['id']))
                y += 8

                desc_lines = self.wrap(entry.get('description'), FONT, 9, ENTRY_DESCRIPTION_WIDTH)
                if desc_lines:
                    for i, line in enumerate(desc_lines):
                        page.ops.append(DrawOp('text', 'entry-description', MARGIN_LEFT + 10,
                                               y + i * ENTRY_LINE_HEIGHT, text=line, size=9,
                                               entry_id=entry['id']))
                    y += len(desc_lines) * ENTRY_LINE_HEIGHT + 5
                else:
                    y += 5
            y += 10

        # Rodapé só na última página
        page.ops.append(DrawOp('rect', 'footer', 0, FOOTER_TOP, self.page_width,
                               self.page_height - FOOTER_TOP, color=SECONDARY))
        page.ops.append(DrawOp('text', 'footer', center, 285,
                               text=f"Relatório gerado em {to_long_ptbr(generated_at)}",
                               size=10, color=WHITE, align='center'))
        page.ops.append(DrawOp('text', 'footer', center, 292, text=self.attribution,
                               size=10, color=WHITE, align='center'))
        return pages

    def _draw(self, c, op):
        c.setFillColor(Color(*(v / 255 for v in op.color)))
        if op.kind in ('background', 'rect'):
            c.rect(op.x * mm, (self.page_height - op.y - op.h) * mm, op.w * mm, op.h * mm,
                   fill=1, stroke=0)
            return

        c.setFont(op.font, op.size)
        baseline = (self.page_height - op.y) * mm
        if op.align == 'center':
            c.drawCentredString(op.x * mm, baseline, op.text)
        else:
            c.drawString(op.x * mm, baseline, op.text)

    def render(self, report, entries, generated_at=None):
        """Gera o PDF e devolve os bytes."""
        pages = self.layout(report, entries, generated_at)
        buffer = BytesIO()
        c = canvas.Canvas(buffer, pagesize=(self.page_width * mm, self.page_height * mm))
        c.setTitle(report.title)
        c.setAuthor(self.attribution)
        for page in pages:
            for op in page.ops:
                self._draw(c, op)
            c.showPage()
        c.save()
        pdf = buffer.getvalue()
        buffer.close()
        return pdf


def report_data_for_patient(patient, **overrides):
    """Valores iniciais do editor de relatório."""
    data = {
        'title': DEFAULT_TITLE,
        'description': DEFAULT_DESCRIPTION,
        'patient_name': patient.get('name', ''),
        'pcs_date': to_frontend_str(patient.get('created_at')),
        'board_version': '1.0',
        'mindmap_version': '1.0',
    }
    data.update({k: v for k, v in overrides.items() if v is not None})
    return ReportData(**data)
