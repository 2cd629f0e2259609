import os
from datetime import date, timedelta
from typing import Any, Dict, Optional

import requests
import streamlit as st

try:
    API_URL = st.secrets["API_URL"]
except Exception:
    API_URL = os.environ.get("BRANCHOPS_API_URL", "http://localhost:8000")

st.set_page_config(page_title="BranchOps", layout="wide")
st.title("BranchOps")

API_URL = API_URL.rstrip("/")
API = f"{API_URL}/api/v1"

ISSUE_LABELS = {"": "No issue", "missing": "Missing", "damaged": "Damaged", "partial": "Partial", "shortage": "Shortage"}


def _headers() -> Dict[str, str]:
    token = st.session_state.get("token")
    return {"Authorization": f"Bearer {token}"} if token else {}


def _raise_for_status(resp: requests.Response) -> None:
    if resp.status_code >= 400:
        try:
            detail = resp.json().get("detail")
        except ValueError:
            detail = resp.text
        raise RuntimeError(f"{resp.status_code}: {detail}")


def api_get(path: str, params: Optional[Dict[str, Any]] = None) -> Any:
    resp = requests.get(f"{API}{path}", params=params, headers=_headers(), timeout=20)
    _raise_for_status(resp)
    return resp.json()


def api_post(path: str, payload: Optional[Dict[str, Any]] = None, **kwargs) -> Any:
    resp = requests.post(f"{API}{path}", json=payload, headers=_headers(), timeout=60, **kwargs)
    _raise_for_status(resp)
    return resp.json()


# ----------------------------
# Login
# ----------------------------
if "token" not in st.session_state:
    st.subheader("Sign in")
    with st.form("login"):
        email = st.text_input("Email")
        password = st.text_input("Password", type="password")
        submitted = st.form_submit_button("Sign in", type="primary")
    if submitted:
        try:
            data = api_post("/auth/login", {"email": email, "password": password})
            st.session_state["token"] = data["token"]
            st.session_state["user"] = data["user"]
            st.rerun()
        except Exception as e:
            st.error(f"Login failed: {e}")
    st.stop()

user = st.session_state.get("user") or {}
role = user.get("role")

with st.sidebar:
    st.write(f"**{user.get('firstName', '')} {user.get('lastName', '')}**")
    st.caption(role or "")
    if st.button("Sign out"):
        for key in ("token", "user"):
            st.session_state.pop(key, None)
        st.rerun()

tabs = st.tabs([
    "Dashboard",
    "Dispatch",
    "Quality",
    "Production",
    "Recipes",
    "Notifications",
])

# ----------------------------
# Tab 0: Dashboard
# ----------------------------
with tabs[0]:
    try:
        dash = api_get("/dashboard")
        st.header(dash.get("roleName") or "Dashboard")
        stats = dash.get("stats") or {}
        scalar = {k: v for k, v in stats.items() if isinstance(v, (int, float))}
        if scalar:
            cols = st.columns(len(scalar))
            for col, (k, v) in zip(cols, scalar.items()):
                col.metric(k, v)
        if stats.get("dispatchStatus"):
            st.subheader("Branch dispatches by status")
            st.bar_chart(stats["dispatchStatus"])
        if stats.get("recentQualityChecks"):
            st.subheader("Recent quality checks")
            st.dataframe(stats["recentQualityChecks"], use_container_width=True)
    except Exception as e:
        st.error(f"Failed to load dashboard: {e}")

# ----------------------------
# Tab 1: Dispatch
# ----------------------------
with tabs[1]:
    st.header("Dispatch")

    if role in ("admin", "operations_lead", "dispatcher"):
        with st.expander("New dispatch from template"):
            raw = st.text_area("Paste the dispatch sheet (tab separated)", height=200, key="dispatch_raw")
            delivery = st.date_input("Delivery date", value=date.today() + timedelta(days=1), key="dispatch_date")
            if st.button("Parse", key="dispatch_parse"):
                try:
                    st.session_state["parsed_dispatch"] = api_post("/dispatch/parse", {"rawText": raw})["branches"]
                except Exception as e:
                    st.error(f"Parse failed: {e}")
            parsed = st.session_state.get("parsed_dispatch")
            if parsed:
                st.write(f"{len(parsed)} branches, {sum(len(b['items']) for b in parsed)} items")
                if st.button("Create dispatch", type="primary", key="dispatch_create"):
                    try:
                        out = api_post("/dispatch", {"deliveryDate": delivery.isoformat(), "branches": parsed})
                        st.success(f"Created {out['id']}")
                        st.session_state.pop("parsed_dispatch", None)
                    except Exception as e:
                        st.error(f"Create failed: {e}")

    try:
        dispatches = api_get("/dispatch")
    except Exception as e:
        st.error(f"Failed to load dispatches: {e}")
        dispatches = []

    if not dispatches:
        st.info("No active dispatches.")
    else:
        labels = {d["id"]: f"{d['deliveryDate']} ({d['id']})" for d in dispatches}
        dispatch_id = st.selectbox("Dispatch", list(labels), format_func=labels.get, key="dispatch_select")
        dispatch = next(d for d in dispatches if d["id"] == dispatch_id)
        branches = {b["branchSlug"]: b for b in dispatch["branchDispatches"]}
        slug = st.selectbox(
            "Branch",
            list(branches),
            format_func=lambda s: f"{branches[s]['branchName']} [{branches[s]['status']}]",
            key="dispatch_branch",
        )
        bd = branches[slug]
        base = f"/dispatch/{dispatch_id}/branches/{slug}"
        packing = bd["status"] in ("pending", "packing")
        done = bd["status"] == "completed"
        qty_key = "packedQty" if packing else "receivedQty"
        checked_key = "packedChecked" if packing else "receivedChecked"

        st.caption("Packing" if packing else ("Completed" if done else "Receiving"))
        for item in bd["items"]:
            c1, c2, c3, c4 = st.columns([4, 2, 2, 2])
            late = " (late)" if item.get("addedLate") else ""
            c1.write(f"**{item['name']}**{late}  \n{item['orderedQty']} {item['unit']}")
            checked = c2.checkbox("OK", value=item[checked_key], key=f"chk-{slug}-{item['id']}", disabled=done)
            if checked != item[checked_key]:
                api_post(f"{base}/items/{item['id']}/check", {"checked": checked})
                st.rerun()
            issue = c3.selectbox(
                "Issue",
                list(ISSUE_LABELS),
                index=list(ISSUE_LABELS).index(item.get("issue") or ""),
                format_func=ISSUE_LABELS.get,
                key=f"iss-{slug}-{item['id']}",
                disabled=done,
            )
            if (issue or None) != item.get("issue"):
                api_post(f"{base}/items/{item['id']}/issue", {"issue": issue or None})
                st.rerun()
            if item.get("issue") in ("partial", "shortage", "damaged"):
                qty = c4.number_input("Qty", min_value=0.0, value=float(item.get(qty_key) or 0), key=f"qty-{slug}-{item['id']}")
                if qty != (item.get(qty_key) or 0):
                    api_post(f"{base}/items/{item['id']}/quantity", {"quantity": qty})

        if not done:
            notes = st.text_area("Overall notes", value=bd.get("overallNotes") or "", key=f"notes-{slug}")
            who = st.text_input("Packed by" if packing else "Received by", key=f"who-{slug}")
            a, b = st.columns(2)
            if a.button("Save progress", key=f"save-{slug}"):
                try:
                    api_post(f"{base}/save", {"overallNotes": notes})
                    st.success("Saved")
                except Exception as e:
                    st.error(f"Save failed: {e}")
            if b.button("Complete packing" if packing else "Complete receiving", type="primary", key=f"done-{slug}"):
                try:
                    if packing:
                        api_post(f"{base}/complete-packing", {"packedBy": who, "overallNotes": notes})
                    else:
                        api_post(f"{base}/complete-receiving", {"receivedBy": who, "overallNotes": notes})
                    st.rerun()
                except Exception as e:
                    st.error(f"Failed: {e}")

        with st.expander("Report"):
            try:
                rep = api_get(f"/dispatch/{dispatch_id}/report")
                st.json(rep["totals"])
                st.json(rep["issues"])
                csv = requests.get(
                    f"{API}/dispatch/{dispatch_id}/export.csv",
                    params={"complete": "true"},
                    headers=_headers(),
                    timeout=20,
                )
                st.download_button("Download CSV", data=csv.content, file_name=f"{dispatch_id}.csv", mime="text/csv")
            except Exception as e:
                st.error(f"Failed to load report: {e}")

# ----------------------------
# Tab 2: Quality
# ----------------------------
with tabs[2]:
    st.header("Quality checks")

    with st.expander("Submit a quality check"):
        with st.form("qc_form"):
            branch = st.text_input("Branch slug", value=(user.get("branches") or [""])[0])
            meal = st.selectbox("Meal service", ["breakfast", "lunch"])
            product = st.text_input("Product name")
            section = st.selectbox("Section", ["Hot", "Cold", "Bakery", "Beverages"])
            taste = st.slider("Taste", 1, 5, 4)
            appearance = st.slider("Appearance", 1, 5, 4)
            portion = st.number_input("Portion (g)", min_value=0.0, value=100.0)
            temp = st.number_input("Temperature (°C)", value=65.0)
            remarks = st.text_area("Remarks")
            send = st.form_submit_button("Submit", type="primary")
        if send:
            try:
                out = api_post(
                    "/quality-checks",
                    {
                        "branchSlug": branch,
                        "mealService": meal,
                        "productName": product,
                        "section": section,
                        "tasteScore": taste,
                        "appearanceScore": appearance,
                        "portionQtyGm": portion,
                        "tempCelsius": temp,
                        "remarks": remarks,
                    },
                )
                st.success(out.get("message", "Submitted"))
            except Exception as e:
                st.error(f"Submit failed: {e}")

    if role in ("admin", "operations_lead"):
        with st.expander("Import from Excel"):
            upload = st.file_uploader("Quality check workbook", type=["xlsx"])
            if upload is not None and st.button("Import", key="qc_import"):
                try:
                    out = api_post("/quality-checks/import", files={"file": (upload.name, upload.getvalue())})
                    st.success(f"Imported {out['imported']} of {out['total']} rows")
                    if out["errors"]:
                        st.dataframe(out["details"]["errors"], use_container_width=True)
                except Exception as e:
                    st.error(f"Import failed: {e}")

        with st.expander("AI analysis"):
            start = st.date_input("From", value=date.today() - timedelta(days=7), key="qa_start")
            end = st.date_input("To", value=date.today(), key="qa_end")
            if st.button("Analyze", key="qa_run"):
                try:
                    out = api_post("/quality-checks/analyze", {"startDate": start.isoformat(), "endDate": end.isoformat()})
                    analysis = out["analysis"]
                    st.write(analysis["summary"])
                    for rec in analysis.get("recommendations") or []:
                        st.write(f"- {rec}")
                except Exception as e:
                    st.error(f"Analysis failed: {e}")

    try:
        checks = api_get("/quality-checks", params={"limit": 50})["checks"]
        st.dataframe(checks, use_container_width=True)
    except Exception as e:
        st.error(f"Failed to load quality checks: {e}")

# ----------------------------
# Tab 3: Production
# ----------------------------
with tabs[3]:
    st.header("Production")
    try:
        today = api_get("/production-schedules/today")
        st.subheader(f"Today ({today['date']})")
        st.dataframe(today["items"], use_container_width=True)
    except Exception as e:
        st.error(f"Failed to load today's production: {e}")

    if role in ("admin", "operations_lead", "central_kitchen"):
        with st.expander("Import production plan"):
            raw = st.text_area("Paste the plan (tab separated, with header row)", height=200, key="prod_raw")
            if st.button("Import", type="primary", key="prod_import"):
                try:
                    out = api_post("/production-schedules/import", {"rawText": raw})
                    st.success(f"Saved {out['scheduleId']} ({out['weekStart']} to {out['weekEnd']})")
                except Exception as e:
                    st.error(f"Import failed: {e}")

# ----------------------------
# Tab 4: Recipes
# ----------------------------
with tabs[4]:
    st.header("Recipes")
    try:
        recipes = api_get("/recipes")
    except Exception as e:
        st.error(f"Failed to load recipes: {e}")
        recipes = []

    if recipes:
        names = {r["recipeId"]: r["name"] for r in recipes}
        recipe_id = st.selectbox("Recipe", list(names), format_func=names.get, key="recipe_select")
        recipe = next(r for r in recipes if r["recipeId"] == recipe_id)
        st.caption(f"Base yield: {recipe.get('yield') or '-'}")
        desired = st.number_input("Desired yield", min_value=0.1, value=1.0, key="recipe_yield")
        try:
            scaled = api_get(f"/recipes/{recipe_id}/scale", params={"desiredYield": desired})
            st.write(f"**{scaled['scaledYield']}** {scaled['multiplierLabel']}")
            st.dataframe(scaled["mainIngredients"], use_container_width=True)
            for sub in scaled["subRecipes"]:
                st.subheader(f"{sub['name']} ({sub['scaledYield']})")
                st.dataframe(sub["ingredients"], use_container_width=True)
        except Exception as e:
            st.error(f"Scaling failed: {e}")
    else:
        st.info("No recipes yet.")

# ----------------------------
# Tab 5: Notifications
# ----------------------------
with tabs[5]:
    st.header("Notifications")
    try:
        data = api_get("/notifications")
        for n in data["notifications"]:
            marker = "" if n["is_read"] else " (new)"
            with st.expander(f"[{n['type']}] {n['title']}{marker}"):
                st.markdown(n["content"])
                if not n["is_read"] and st.button("Mark as read", key=f"read-{n['id']}"):
                    api_post(f"/notifications/{n['id']}/read")
                    st.rerun()
    except Exception as e:
        st.error(f"Failed to load notifications: {e}")

    if role in ("admin", "operations_lead"):
        st.subheader("Compose")
        brief = st.text_area("Describe the announcement", key="compose_brief")
        if st.button("Draft with AI", key="compose_ai"):
            try:
                st.session_state["draft"] = api_post("/notifications/compose-ai", {"prompt": brief})["notification"]
            except Exception as e:
                st.error(f"Draft failed: {e}")
        draft = st.session_state.get("draft")
        if draft:
            st.json(draft)
            if st.button("Publish", type="primary", key="compose_publish"):
                try:
                    api_post("/notifications", draft)
                    st.success("Published")
                    st.session_state.pop("draft", None)
                except Exception as e:
                    st.error(f"Publish failed: {e}")
