"""
Políticas de permissão.

A política é escolhida pela configuração (PERMISSION_POLICY) e resolvida a
cada requisição junto com o papel do usuário da sessão.
"""
from flask import current_app, g, session

ALLOW_ALL = 'allow_all'
ROLE_BASED = 'role_based'

# "recurso:ação"; '*' libera tudo
DEFAULT_ROLE_PERMISSIONS = {
    'admin': {'*'},
    'user': {
        'patients:read', 'patients:create', 'patients:update',
        'pcs:read', 'pcs:create', 'pcs:update', 'pcs:delete',
        'comments:read', 'comments:create',
        'reports:create', 'share:create',
    },
}


class PermissionPolicy:
    def can(self, role, action, resource):
        raise NotImplementedError


class AllowAllPolicy(PermissionPolicy):
    """Todo usuário autenticado tem acesso completo."""

    def can(self, role, action, resource):
        return True


class RoleBasedPolicy(PermissionPolicy):
    def __init__(self, role_permissions=None):
        self.role_permissions = role_permissions or DEFAULT_ROLE_PERMISSIONS

    def can(self, role, action, resource):
        granted = self.role_permissions.get(role) or set()
        return '*' in granted or f"{resource}:{action}" in granted


def build_policy(name):
    if name == ROLE_BASED:
        return RoleBasedPolicy()
    if name in (None, '', ALLOW_ALL):
        return AllowAllPolicy()
    raise ValueError(f"Política de permissão desconhecida: {name}")


def get_request_policy():
    """Política da requisição atual (guardada em flask.g)."""
    if 'permission_policy' not in g:
        g.permission_policy = build_policy(current_app.config.get('PERMISSION_POLICY'))
    return g.permission_policy


def current_user():
    """Usuário da sessão no formato usado pelo quadro PCS (ou None)."""
    if 'user_id' not in session:
        return None
    return {
        'id': session['user_id'],
        'email': session.get('user_email'),
        'name': session.get('user_name'),
        'role': session.get('user_role'),
    }
