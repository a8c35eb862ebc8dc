from typing import Dict

from sqlalchemy import text


OWNED_TABLES = ["bookmark"]

POLICY_DEFINITIONS: Dict[str, str] = {
    "select_owner": "FOR SELECT USING (owner_user_id = current_setting('app.user_id', true))",
    "insert_owner": "FOR INSERT WITH CHECK (owner_user_id = current_setting('app.user_id', true))",
    "mod_owner": (
        "FOR UPDATE USING (owner_user_id = current_setting('app.user_id', true)) "
        "WITH CHECK (owner_user_id = current_setting('app.user_id', true))"
    ),
    "del_owner": "FOR DELETE USING (owner_user_id = current_setting('app.user_id', true))",
}


def _privilege_hint(err: str):
    low = err.lower()
    if "permission denied" in low or "must be owner" in low:
        return "Requires superuser or table owner privileges to enable RLS/policies"
    return None


def enable_rls(session) -> Dict:
    """Enable RLS and owner-only policies on every owned table.

    Requires Postgres table owner privileges. The application binds
    ``app.user_id`` per request (see :mod:`app.db`); rows whose owner does not
    match are invisible and immutable for that connection.
    """
    details: Dict = {"tables": {}}
    all_ok = True
    for tbl in OWNED_TABLES:
        tinfo: Dict = {
            "enabled": False,
            "policies": {policy: False for policy in POLICY_DEFINITIONS},
        }
        try:
            session.exec(text(f"ALTER TABLE {tbl} ENABLE ROW LEVEL SECURITY;"))
            session.exec(text(f"ALTER TABLE {tbl} FORCE ROW LEVEL SECURITY;"))
            tinfo["enabled"] = True
        except Exception as e:  # noqa: BLE001
            err = str(e)
            tinfo["error"] = err
            hint = _privilege_hint(err)
            if hint:
                tinfo["hint"] = hint
            all_ok = False
            details["tables"][tbl] = tinfo
            continue

        for policy_key, clause in POLICY_DEFINITIONS.items():
            policy_name = f"{tbl}_{policy_key}"
            try:
                exists = session.exec(
                    text(
                        "SELECT 1 FROM pg_policies WHERE schemaname = current_schema() "
                        "AND tablename = :table AND policyname = :policy LIMIT 1"
                    ).params(table=tbl, policy=policy_name)
                ).scalar()
                if not exists:
                    session.exec(text(f"CREATE POLICY {policy_name} ON {tbl} {clause};"))
                tinfo["policies"][policy_key] = True
            except Exception as e:  # noqa: BLE001
                err = str(e)
                hint = _privilege_hint(err)
                tinfo.setdefault("policy_errors", {})[policy_key] = {"error": err, **({"hint": hint} if hint else {})}
                tinfo.setdefault("error", err)
                if hint:
                    tinfo.setdefault("hint", hint)
                all_ok = False

        details["tables"][tbl] = tinfo
    try:
        session.commit()
    except Exception:  # noqa: BLE001
        session.rollback()
        all_ok = False
    details["ok"] = all_ok and all(
        (t.get("enabled") and all(t.get("policies", {}).values())) for t in details["tables"].values()
    )
    return details
