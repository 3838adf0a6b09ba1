"""Row-level security policies mirroring services.access.policy

Revision ID: 0002
Revises: 0001
Create Date: 2026-10-18

The application role (not the table owner) is subject to these policies.
The API publishes the caller through set_config('app.current_profile_id')
and set_config('app.current_role') at the start of each transaction; an
unset profile id means anonymous.

Reads stay open at this layer: sign-in has to look profiles up before the
caller is known, and scope narrowing of lists happens in the visibility
filter. Writes are restricted per table, USING for the row as it is and
WITH CHECK for the row as it will be.
"""

from typing import Sequence, Union

from alembic import op

revision: str = "0002"
down_revision: Union[str, None] = "0001"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


TABLES = [
    "profiles",
    "departments",
    "department_leaders",
    "machines",
    "machine_operators",
    "status_types",
    "status_history",
    "audit_events",
]

HELPERS = """
CREATE OR REPLACE FUNCTION app_profile_id() RETURNS uuid
LANGUAGE sql STABLE AS $$
    SELECT NULLIF(current_setting('app.current_profile_id', true), '')::uuid
$$;

CREATE OR REPLACE FUNCTION app_role() RETURNS text
LANGUAGE sql STABLE AS $$
    SELECT COALESCE(NULLIF(current_setting('app.current_role', true), ''), 'anon')
$$;

CREATE OR REPLACE FUNCTION app_is_admin() RETURNS boolean
LANGUAGE sql STABLE AS $$
    SELECT app_profile_id() IS NOT NULL AND app_role() = 'admin'
$$;

CREATE OR REPLACE FUNCTION app_leads_department(dept uuid) RETURNS boolean
LANGUAGE sql STABLE SECURITY DEFINER AS $$
    SELECT app_role() = 'team_leader' AND EXISTS (
        SELECT 1 FROM department_leaders
        WHERE department_id = dept AND user_id = app_profile_id()
    )
$$;

CREATE OR REPLACE FUNCTION app_operates_machine(machine uuid) RETURNS boolean
LANGUAGE sql STABLE SECURITY DEFINER AS $$
    SELECT app_role() = 'operator' AND EXISTS (
        SELECT 1 FROM machine_operators
        WHERE machine_id = machine AND user_id = app_profile_id()
    )
$$;

CREATE OR REPLACE FUNCTION app_machine_in_scope(machine uuid, dept uuid) RETURNS boolean
LANGUAGE sql STABLE AS $$
    SELECT app_is_admin() OR app_leads_department(dept) OR app_operates_machine(machine)
$$;

CREATE OR REPLACE FUNCTION app_machine_scope(machine uuid) RETURNS boolean
LANGUAGE sql STABLE SECURITY DEFINER AS $$
    SELECT EXISTS (
        SELECT 1 FROM machines m
        WHERE m.id = machine AND app_machine_in_scope(m.id, m.department_id)
    )
$$;

CREATE OR REPLACE FUNCTION app_machine_department_led(machine uuid) RETURNS boolean
LANGUAGE sql STABLE SECURITY DEFINER AS $$
    SELECT EXISTS (
        SELECT 1 FROM machines m
        WHERE m.id = machine AND app_leads_department(m.department_id)
    )
$$;
"""

POLICIES = """
-- profiles: self-insert as operator (sign-up), leaders onboard operators,
-- admin anything; role changes are admin-only; never deleted.
CREATE POLICY profiles_select ON profiles FOR SELECT USING (true);
CREATE POLICY profiles_insert ON profiles FOR INSERT WITH CHECK (
    app_is_admin()
    OR (role = 'operator' AND (id = app_profile_id() OR app_role() = 'team_leader'))
);
CREATE POLICY profiles_update ON profiles FOR UPDATE
    USING (app_is_admin() OR id = app_profile_id())
    WITH CHECK (
        app_is_admin()
        OR (id = app_profile_id() AND role = (SELECT p.role FROM profiles p WHERE p.id = app_profile_id()))
    );

-- departments and leader assignments: admin only.
CREATE POLICY departments_select ON departments FOR SELECT USING (true);
CREATE POLICY departments_write ON departments FOR ALL
    USING (app_is_admin()) WITH CHECK (app_is_admin());

CREATE POLICY department_leaders_select ON department_leaders FOR SELECT USING (true);
CREATE POLICY department_leaders_write ON department_leaders FOR ALL
    USING (app_is_admin()) WITH CHECK (app_is_admin());

-- machines: leaders create inside led departments; updates must stay in
-- scope before and after; delete is admin-only.
CREATE POLICY machines_select ON machines FOR SELECT USING (true);
CREATE POLICY machines_insert ON machines FOR INSERT WITH CHECK (
    app_is_admin() OR app_leads_department(department_id)
);
CREATE POLICY machines_update ON machines FOR UPDATE
    USING (app_machine_in_scope(id, department_id))
    WITH CHECK (app_machine_in_scope(id, department_id));
CREATE POLICY machines_delete ON machines FOR DELETE USING (app_is_admin());

-- operator assignments: admin, or the leader of the machine's department.
CREATE POLICY machine_operators_select ON machine_operators FOR SELECT USING (true);
CREATE POLICY machine_operators_write ON machine_operators FOR ALL
    USING (app_is_admin() OR app_machine_department_led(machine_id))
    WITH CHECK (app_is_admin() OR app_machine_department_led(machine_id));

-- status catalog: admin; default entries are never deleted.
CREATE POLICY status_types_select ON status_types FOR SELECT USING (true);
CREATE POLICY status_types_insert ON status_types FOR INSERT WITH CHECK (app_is_admin());
CREATE POLICY status_types_update ON status_types FOR UPDATE
    USING (app_is_admin()) WITH CHECK (app_is_admin());
CREATE POLICY status_types_delete ON status_types FOR DELETE
    USING (app_is_admin() AND NOT is_default);

-- status history: append-only. No UPDATE or DELETE policy exists, so both
-- are rejected for every role; rows go only through the machines FK cascade.
CREATE POLICY status_history_select ON status_history FOR SELECT USING (true);
CREATE POLICY status_history_insert ON status_history FOR INSERT WITH CHECK (
    changed_by = app_profile_id() AND app_machine_scope(machine_id)
);

-- audit events: append-only, written as oneself.
CREATE POLICY audit_events_select ON audit_events FOR SELECT USING (app_is_admin());
CREATE POLICY audit_events_insert ON audit_events FOR INSERT WITH CHECK (
    actor_id = app_profile_id()
);
"""


def upgrade() -> None:
    op.execute(HELPERS)
    for table in TABLES:
        op.execute(f"ALTER TABLE {table} ENABLE ROW LEVEL SECURITY")
    op.execute(POLICIES)


def downgrade() -> None:
    for table in TABLES:
        op.execute(
            f"""
            DO $$
            DECLARE pol record;
            BEGIN
                FOR pol IN SELECT policyname FROM pg_policies WHERE tablename = '{table}' LOOP
                    EXECUTE format('DROP POLICY %I ON {table}', pol.policyname);
                END LOOP;
            END $$;
            """
        )
        op.execute(f"ALTER TABLE {table} DISABLE ROW LEVEL SECURITY")
    for fn in (
        "app_machine_department_led(uuid)",
        "app_machine_scope(uuid)",
        "app_machine_in_scope(uuid, uuid)",
        "app_operates_machine(uuid)",
        "app_leads_department(uuid)",
        "app_is_admin()",
        "app_role()",
        "app_profile_id()",
    ):
        op.execute(f"DROP FUNCTION IF EXISTS {fn}")
