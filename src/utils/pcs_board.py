"""
Quadro PCS (Planejamento Clínico Segmentado).

As entradas de um paciente ficam particionadas nas categorias
fundamental / important / care. Dentro de cada categoria o order_index
é denso (0..n-1) depois de qualquer movimento. O banco é a fonte da
verdade; `OrderedBoard.entries` é apenas o espelho em memória da
requisição atual.
"""
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from utils.permissions import AllowAllPolicy

logger = logging.getLogger(__name__)

CATEGORIES = ('fundamental', 'important', 'care')
CATEGORY_NAMES = {
    'fundamental': 'Pontos Fundamentais',
    'important': 'Pontos Importantes',
    'care': 'Pontos de Cuidado',
}
_CATEGORY_POSITION = {c: i for i, c in enumerate(CATEGORIES)}


class BoardValidationError(ValueError):
    pass


class EntryNotFound(LookupError):
    pass


def _sort_key(entry):
    return (_CATEGORY_POSITION.get(entry['category'], len(CATEGORIES)), entry['order_index'])


def _parse_index(value, field):
    if isinstance(value, bool):
        raise BoardValidationError(f"Campo '{field}' inválido.")
    try:
        return int(value)
    except (TypeError, ValueError):
        raise BoardValidationError(f"Campo '{field}' inválido.")


@dataclass
class DragResult:
    """Resultado de um arrastar-e-soltar vindo do quadro."""
    moved_id: str
    source_category: str
    source_index: int
    destination_category: Optional[str] = None
    destination_index: Optional[int] = None

    @property
    def dropped(self):
        return self.destination_category is not None

    @classmethod
    def from_payload(cls, payload):
        """
        Aceita o formato plano ({moved_id, source_category, ...}) ou o formato
        da biblioteca de drag-and-drop ({draggableId, source: {droppableId, index},
        destination: {...} | null}).
        """
        if not isinstance(payload, dict):
            raise BoardValidationError("Movimento inválido.")

        if 'draggableId' in payload:
            source = payload.get('source') or {}
            destination = payload.get('destination')
            if not isinstance(source, dict):
                raise BoardValidationError("Movimento inválido.")
            if destination is not None and not isinstance(destination, dict):
                raise BoardValidationError("Movimento inválido.")
            flat = {
                'moved_id': payload.get('draggableId'),
                'source_category': source.get('droppableId'),
                'source_index': source.get('index'),
                'destination_category': destination.get('droppableId') if destination else None,
                'destination_index': destination.get('index') if destination else None,
            }
        else:
            flat = payload

        moved_id = flat.get('moved_id')
        if not moved_id or not isinstance(moved_id, str):
            raise BoardValidationError("Entrada do movimento não informada.")

        source_category = flat.get('source_category')
        if source_category not in CATEGORIES:
            raise BoardValidationError("Categoria de origem inválida.")
        source_index = _parse_index(flat.get('source_index'), 'source_index')

        destination_category = flat.get('destination_category')
        destination_index = None
        if destination_category is not None:
            if destination_category not in CATEGORIES:
                raise BoardValidationError("Categoria de destino inválida.")
            destination_index = _parse_index(flat.get('destination_index'), 'destination_index')

        return cls(moved_id, source_category, source_index, destination_category, destination_index)


class OrderedBoard:
    def __init__(self, store, patient_id, user=None, read_only=False, policy=None):
        self.store = store
        self.patient_id = patient_id
        self.user = user or {}
        self.read_only = read_only
        self.policy = policy or AllowAllPolicy()
        self.entries = []

    @property
    def user_id(self):
        return self.user.get('id')

    # -- leitura ---------------------------------------------------------

    def load(self):
        rows = self.store.list_entries(self.patient_id)
        if rows is None:
            return False
        self.entries = sorted(rows, key=_sort_key)
        return True

    def get(self, entry_id):
        for entry in self.entries:
            if entry['id'] == entry_id:
                return entry
        return None

    def _require(self, entry_id):
        entry = self.get(entry_id)
        if entry is None:
            raise EntryNotFound(entry_id)
        return entry

    def entries_by_category(self, category):
        return sorted((e for e in self.entries if e['category'] == category),
                      key=lambda e: e['order_index'])

    def grouped(self):
        return {c: self.entries_by_category(c) for c in CATEGORIES}

    def change_log(self, limit=50):
        formatted = []
        for log in self.store.list_change_log(self.patient_id, limit) or []:
            full_name = f"{log.get('first_name') or ''} {log.get('last_name') or ''}".strip()
            formatted.append({
                'id': log['id'],
                'action': log['action'],
                'description': log['description'],
                'user_name': full_name or log.get('email') or 'Sistema',
                'created_at': log['created_at'],
            })
        return formatted

    # -- escrita ---------------------------------------------------------

    def _can_mutate(self, action):
        if self.read_only:
            return False
        if not self.policy.can(self.user.get('role'), action, 'pcs'):
            logger.info("Usuário %s sem permissão '%s' no PCS.", self.user_id, action)
            return False
        return True

    def _log(self, action, description):
        if not self.store.add_change_log(self.patient_id, self.user_id, action, description):
            logger.warning("Log PCS não registrado: %s", description)

    def add(self, title, description=None, category='fundamental'):
        if not self._can_mutate('create'):
            return None
        title = (title or '').strip()
        if not title:
            raise BoardValidationError("O título é obrigatório.")
        if category not in CATEGORIES:
            raise BoardValidationError("Categoria inválida.")
        description = (description or '').strip() or None

        max_order = max((e['order_index'] for e in self.entries if e['category'] == category),
                        default=-1)
        row = self.store.insert_entry(self.patient_id, title, description, category, max_order + 1)
        if not row:
            logger.error("Falha ao inserir entrada PCS para o paciente %s.", self.patient_id)
            return None

        self.entries.append(row)
        self._log('create', f'Entrada "{title}" adicionada em {CATEGORY_NAMES[category]}.')
        return row

    def update(self, entry_id, title, description=None):
        if not self._can_mutate('update'):
            return None
        title = (title or '').strip()
        if not title:
            raise BoardValidationError("O título é obrigatório.")
        entry = self._require(entry_id)
        changes = {'title': title, 'description': (description or '').strip() or None}

        if not self.store.update_entry(entry_id, changes):
            logger.error("Falha ao atualizar entrada PCS %s.", entry_id)
            return None

        entry.update(changes)
        self._log('update', f'Entrada "{title}" editada.')
        return entry

    def remove(self, entry_id):
        # Os irmãos não são renumerados; a lacuna fecha no próximo movimento.
        if not self._can_mutate('delete'):
            return None
        entry = self._require(entry_id)

        if not self.store.delete_entry(entry_id):
            logger.error("Falha ao remover entrada PCS %s.", entry_id)
            return None

        self.entries = [e for e in self.entries if e['id'] != entry_id]
        self._log('delete', f'Entrada "{entry["title"]}" removida.')
        return entry

    def toggle_completion(self, entry_id):
        if not self._can_mutate('update'):
            return None
        entry = self._require(entry_id)
        completing = not entry['is_completed']
        changes = {
            'is_completed': completing,
            'completed_at': datetime.now() if completing else None,
            'completed_by': self.user_id if completing else None,
        }

        if not self.store.update_entry(entry_id, changes):
            logger.error("Falha ao alterar conclusão da entrada PCS %s.", entry_id)
            return None

        entry.update(changes)
        if completing:
            self._log('complete', f'Entrada "{entry["title"]}" marcada como concluída.')
        else:
            self._log('reopen', f'Entrada "{entry["title"]}" reaberta.')
        return entry

    def move(self, entry_id, destination_category, destination_index):
        if not self._can_mutate('update'):
            return None
        if destination_category not in CATEGORIES:
            raise BoardValidationError("Categoria de destino inválida.")
        destination_index = _parse_index(destination_index, 'destination_index')
        entry = self._require(entry_id)

        snapshot = {e['id']: (e['category'], e['order_index']) for e in self.entries}
        source_category = entry['category']

        ordered = sorted(self.entries, key=_sort_key)
        ordered.remove(entry)
        entry['category'] = destination_category

        destination = [e for e in ordered if e['category'] == destination_category]
        position = min(max(destination_index, 0), len(destination))
        destination.insert(position, entry)
        for index, sibling in enumerate(destination):
            sibling['order_index'] = index

        if source_category != destination_category:
            source = [e for e in ordered if e['category'] == source_category]
            for index, sibling in enumerate(source):
                sibling['order_index'] = index

        changed = [(e['id'], e['category'], e['order_index']) for e in self.entries
                   if snapshot[e['id']] != (e['category'], e['order_index'])]
        if not changed:
            return entry

        if not self.store.update_positions(changed):
            logger.warning("Falha ao gravar movimento da entrada %s; recarregando o quadro.", entry_id)
            if not self.load():
                for e in self.entries:
                    e['category'], e['order_index'] = snapshot[e['id']]
            return None

        self.entries.sort(key=_sort_key)
        self._log('move', f'Entrada "{entry["title"]}" movida para {CATEGORY_NAMES[destination_category]} '
                          f'(posição {position + 1}).')
        return entry

    def apply_drag(self, drag):
        if not drag.dropped:
            return None
        entry = self._require(drag.moved_id)
        if entry['category'] != drag.source_category:
            raise BoardValidationError("O quadro está desatualizado. Recarregue a página.")
        return self.move(drag.moved_id, drag.destination_category, drag.destination_index)


# -- mapa mental -------------------------------------------------------------

MINDMAP_COLORS = {
    'fundamental': ('#fee2e2', '#fca5a5'),
    'important': ('#fed7aa', '#fdba74'),
    'care': ('#f3e8ff', '#c4b5fd'),
}
MINDMAP_COMPLETED_COLORS = ('#dcfce7', '#86efac')
MINDMAP_PREVIEW_CHARS = 50


def build_mindmap_nodes(entries):
    """Uma coluna por categoria, uma linha por entrada."""
    nodes = []
    for column, category in enumerate(CATEGORIES):
        in_category = sorted((e for e in entries if e['category'] == category),
                             key=lambda e: e['order_index'])
        for row, entry in enumerate(in_category):
            background, border = (MINDMAP_COMPLETED_COLORS if entry['is_completed']
                                  else MINDMAP_COLORS[category])
            description = entry.get('description') or ''
            if len(description) > MINDMAP_PREVIEW_CHARS:
                description = description[:MINDMAP_PREVIEW_CHARS] + '...'
            nodes.append({
                'id': entry['id'],
                'x': 100 + column * 300,
                'y': 100 + row * 120,
                'title': entry['title'],
                'preview': description,
                'category': category,
                'completed': entry['is_completed'],
                'background': background,
                'border': border,
            })
    return nodes
