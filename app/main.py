"""
Streamlit Frontend for BizLedger

The screen an owner or accountant of a small business works in daily:
transactions, budgets, tenders, the KUDiR ledger and Excel reports.

DESIGN PRINCIPLES:
1. Preview before import: nothing from a CSV is stored until confirmed
2. Clear error messages per row, never a silent skip
3. Every number on screen is computed from stored records on demand

Each page works on the company selected in the sidebar.
"""

import asyncio
from datetime import date
from decimal import Decimal, InvalidOperation
from uuid import UUID, uuid4

import streamlit as st

from bizledger.audit import create_correlation_id
from bizledger.models.accounting import EntryType, KudirFilters
from bizledger.orchestrator import AppComponents, create_app_components
from bizledger.services.imports import CsvImportError

XLSX_MIME = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"

# Page configuration
st.set_page_config(
    page_title="BizLedger",
    page_icon="📒",
    layout="wide",
    initial_sidebar_state="expanded",
)

# Custom CSS
st.markdown("""
<style>
    .stButton>button {
        width: 100%;
        margin-top: 10px;
    }
    .warning-box {
        padding: 20px;
        background-color: #fff3cd;
        border-radius: 10px;
        border-left: 5px solid #ffc107;
        margin: 10px 0;
    }
    .error-box {
        padding: 20px;
        background-color: #f8d7da;
        border-radius: 10px;
        border-left: 5px solid #dc3545;
        margin: 10px 0;
    }
</style>
""", unsafe_allow_html=True)


def run_async(coro):
    """Helper to run async functions in Streamlit."""
    loop = asyncio.new_event_loop()
    asyncio.set_event_loop(loop)
    try:
        return loop.run_until_complete(coro)
    finally:
        loop.close()


@st.cache_resource
def get_components() -> AppComponents:
    """Get or create application components (cached)."""
    try:
        return create_app_components()
    except Exception as e:
        st.error(f"Failed to initialize: {e}")
        return create_app_components(storage_backend="memory")


def money(value: Decimal) -> str:
    return f"{value:,.2f} ₽".replace(",", " ")


def current_company() -> UUID:
    """Company selected in the sidebar."""
    if "company_id" not in st.session_state:
        st.session_state.company_id = str(uuid4())
    raw = st.sidebar.text_input("Company ID", value=st.session_state.company_id)
    try:
        company_id = UUID(raw.strip())
    except ValueError:
        st.sidebar.error("Company ID must be a UUID")
        st.stop()
    st.session_state.company_id = str(company_id)
    return company_id


def main():
    """Main application entry point."""
    components = get_components()

    st.sidebar.title("📒 BizLedger")
    st.sidebar.markdown("---")
    company_id = current_company()

    page = st.sidebar.radio(
        "Navigate to:",
        ["💳 Transactions", "📊 Budgets", "🏛 Tenders", "📘 KUDiR", "📥 Reports", "⚙️ Settings"],
        index=0,
    )

    if page == "💳 Transactions":
        render_transactions_page(components, company_id)
    elif page == "📊 Budgets":
        render_budgets_page(components, company_id)
    elif page == "🏛 Tenders":
        render_tenders_page(components, company_id)
    elif page == "📘 KUDiR":
        render_kudir_page(components, company_id)
    elif page == "📥 Reports":
        render_reports_page(components, company_id)
    elif page == "⚙️ Settings":
        render_settings_page(components)


def render_transactions_page(components: AppComponents, company_id: UUID):
    """CSV import with preview, then the latest transactions."""
    st.title("💳 Transactions")

    accounts = run_async(components.ledger_storage.list_accounts(company_id))
    bank_statement = st.checkbox("Bank statement format", value=False)
    uploaded_file = st.file_uploader("Choose a CSV file", type=["csv"])

    if uploaded_file and st.button("🔍 Check file", type="primary"):
        st.session_state.import_correlation_id = create_correlation_id()
        try:
            st.session_state.import_preview = run_async(
                components.import_flow.preview(
                    company_id,
                    uploaded_file.getvalue(),
                    uploaded_file.name,
                    bank_statement=bank_statement,
                    correlation_id=st.session_state.import_correlation_id,
                )
            )
        except CsvImportError as e:
            st.session_state.import_preview = None
            st.markdown(f"""
            <div class="error-box">
                <h4>❌ File rejected</h4>
                <p>{e}</p>
            </div>
            """, unsafe_allow_html=True)

    preview = st.session_state.get("import_preview")
    if preview is not None:
        st.subheader("📋 Preview")
        st.markdown(f"**Valid rows:** {len(preview.normalized)} of {preview.total_rows}")

        if preview.has_errors:
            with st.expander(f"⚠️ Rows with errors ({len(preview.errors)})", expanded=True):
                for error in preview.errors:
                    st.markdown(f"- Row {error.row_number}: {'; '.join(error.issues)}")

        st.dataframe([
            {
                "Row": r.row_number,
                "Date": r.occurred_at,
                "Type": r.direction.value if r.direction else "",
                "Amount": float(r.amount) if r.amount is not None else None,
                "Category": r.category_name or "",
                "Account": r.account_name or "",
                "Note": r.note or "",
            }
            for r in preview.normalized
        ])

        default_account = st.selectbox(
            "Account for rows without one",
            options=[None] + accounts,
            format_func=lambda a: "None" if a is None else a.name,
        )

        if preview.normalized and st.button("✅ Import valid rows"):
            result, usages = run_async(
                components.import_flow.import_rows(
                    company_id,
                    preview.normalized,
                    default_account_id=default_account.id if default_account else None,
                    correlation_id=st.session_state.import_correlation_id,
                )
            )
            st.success(f"Imported {result.imported}, skipped {result.skipped}")
            for warning in result.warnings:
                st.warning(warning)
            if usages:
                st.info(f"Recomputed {len(usages)} budget(s)")
            st.session_state.import_preview = None

    st.markdown("---")
    st.subheader("Latest transactions")
    transactions = run_async(components.ledger_storage.list_transactions(company_id))
    if not transactions:
        st.info("No transactions yet. Import a CSV file to get started.")
    else:
        st.dataframe([
            {
                "Date": tx.occurred_at,
                "Type": tx.direction.value,
                "Amount": float(tx.amount),
                "Counterparty": tx.counterparty or "",
                "Note": tx.note or "",
            }
            for tx in transactions[:200]
        ])


def render_budgets_page(components: AppComponents, company_id: UUID):
    """Budget usage, alerts and spending anomalies."""
    st.title("📊 Budgets")

    alerts, anomalies, summary = run_async(
        components.budget_flow.check(company_id, correlation_id=create_correlation_id())
    )

    col1, col2, col3, col4 = st.columns(4)
    col1.metric("Active budgets", summary.total_budgets)
    col2.metric("On track", summary.on_track)
    col3.metric("At risk", summary.at_risk)
    col4.metric("Exceeded", summary.exceeded)

    usage = run_async(components.budget_flow.budget_service.list_usage(company_id))
    for budget, budget_usage in usage:
        label = budget.name or str(budget.category_id)
        st.markdown(
            f"**{label}**: {money(budget_usage.spent)} of {money(budget_usage.limit_amount)}"
        )
        st.progress(min(budget_usage.percentage, 100.0) / 100)

        forecast = run_async(
            components.budget_flow.budget_service.forecast_depletion(company_id, budget.id)
        )
        if forecast and forecast.days_until_depleted is not None:
            st.caption(
                f"At {money(forecast.daily_rate)} a day this budget runs out in "
                f"{forecast.days_until_depleted} days"
            )
        if forecast and forecast.projected_overspend > 0:
            st.caption(f"Projected overspend: {money(forecast.projected_overspend)}")

    if alerts:
        st.subheader("⚠️ Budget alerts")
        for alert in alerts:
            st.warning(f"{alert.message} {alert.recommendation}")

    if anomalies:
        st.subheader("🔎 Unusual spending")
        for anomaly in anomalies:
            st.info(f"{anomaly.message}. {anomaly.recommendation}")


def render_tenders_page(components: AppComponents, company_id: UUID):
    """Tender dashboard, manager performance and guarantees."""
    st.title("🏛 Tenders")
    tab_dashboard, tab_managers, tab_guarantees = st.tabs(
        ["Dashboard", "Managers", "Guarantees"]
    )

    with tab_dashboard:
        dashboard = run_async(components.reporting_flow.tender_dashboard(company_id))
        overview = dashboard.overview
        col1, col2, col3, col4 = st.columns(4)
        col1.metric("Tenders", overview.total_tenders)
        col2.metric("Active", overview.active_tenders)
        col3.metric("Won", overview.won_tenders)
        col4.metric("Win rate", f"{overview.win_rate:.1f}%")

        st.markdown(f"**Contract value:** {money(overview.total_contract_price)}")
        st.markdown(f"**Savings vs NMCK:** {money(overview.total_savings)}")

        st.subheader("By stage")
        st.dataframe([s.model_dump() for s in dashboard.by_stage])
        st.subheader("Monthly")
        st.bar_chart({m.month: m.count for m in dashboard.monthly})

        if dashboard.upcoming_deadlines:
            st.subheader("⏰ Upcoming deadlines")
            for item in dashboard.upcoming_deadlines:
                st.markdown(
                    f"- {item.purchase_number}: {item.deadline:%d.%m.%Y} "
                    f"({item.days_left} days left)"
                )

        tasks = dashboard.task_summary
        st.markdown(
            f"**Tasks:** {tasks.total} total, {tasks.in_progress} in progress, "
            f"{tasks.overdue} overdue"
        )

    with tab_managers:
        report = run_async(components.reporting_flow.manager_performance(company_id))
        if report.team.best_manager:
            st.success(
                f"Best manager: {report.team.best_manager.name} "
                f"({report.team.best_manager.win_rate:.1f}% win rate)"
            )
        st.dataframe([
            {
                "Rank": m.rank,
                "Manager": m.name,
                "Tenders": m.total_tenders,
                "Won": m.won_tenders,
                "Win rate, %": m.win_rate,
                "Contract value": float(m.total_contract_price),
                "Trend": m.trend.value,
            }
            for m in report.managers
        ])

    with tab_guarantees:
        report = run_async(components.reporting_flow.guarantees_report(company_id))
        col1, col2, col3 = st.columns(3)
        col1.metric("Guarantees", report.overview.total_count)
        col2.metric("Expiring", report.overview.expiring_count)
        col3.metric("Expired", report.overview.expired_count)
        if report.expiring:
            st.subheader("Expiring soon")
            st.dataframe([g.model_dump(mode="json") for g in report.expiring])


def render_kudir_page(components: AppComponents, company_id: UUID):
    """KUDiR ledger, quarterly totals, sync and Excel download."""
    st.title("📘 KUDiR")

    col1, col2, col3 = st.columns(3)
    with col1:
        year = st.number_input("Year", min_value=2000, max_value=2100, value=date.today().year)
    with col2:
        quarter = st.selectbox("Quarter", options=[None, 1, 2, 3, 4],
                               format_func=lambda q: "All" if q is None else f"Q{q}")
    with col3:
        entry_type = st.selectbox("Type", options=list(EntryType),
                                  format_func=lambda t: t.value.title())
    search = st.text_input("Search description")

    kudir = components.kudir_flow
    if st.button("🔄 Sync from paid documents"):
        created = run_async(kudir.sync(company_id, int(year), correlation_id=create_correlation_id()))
        st.success(f"Created {len(created)} entries")

    filters = KudirFilters(year=int(year), quarter=quarter, entry_type=entry_type, search=search or None)
    entries = run_async(kudir.service.list_entries(company_id, filters))
    st.dataframe([
        {
            "No.": e.entry_number,
            "Date": e.entry_date,
            "Description": e.description,
            "Income": float(e.income),
            "Expense": float(e.expense),
        }
        for e in entries
    ])

    st.subheader("Quarterly totals")
    quarters = run_async(kudir.service.quarter_summaries(company_id, int(year)))
    st.dataframe([q.model_dump(mode="json") for q in quarters])

    with st.expander("➕ Add entry"):
        entry_date = st.date_input("Date", value=date.today())
        description = st.text_input("Description", key="kudir_description")
        income_raw = st.text_input("Income", value="0")
        expense_raw = st.text_input("Expense", value="0")
        if st.button("Save entry"):
            try:
                entry = run_async(kudir.create_entry(
                    company_id,
                    entry_date,
                    description,
                    income=Decimal(income_raw.replace(",", ".") or "0"),
                    expense=Decimal(expense_raw.replace(",", ".") or "0"),
                    correlation_id=create_correlation_id(),
                ))
                st.success(f"Saved entry No.{entry.entry_number}")
            except (InvalidOperation, ValueError) as e:
                st.error(f"Could not save entry: {e}")

    content = run_async(components.reporting_flow.kudir_workbook(company_id, int(year)))
    st.download_button(
        "📥 Download KUDiR (Excel)",
        data=content,
        file_name=f"kudir_{int(year)}.xlsx",
        mime=XLSX_MIME,
    )


def render_reports_page(components: AppComponents, company_id: UUID):
    """Excel finance report download."""
    st.title("📥 Reports")

    col1, col2 = st.columns(2)
    with col1:
        date_from = st.date_input("From", value=None)
    with col2:
        date_to = st.date_input("To", value=None)

    if st.button("Generate finance report", type="primary"):
        content = run_async(components.reporting_flow.finance_report(
            company_id,
            date_from=date_from,
            date_to=date_to,
            correlation_id=create_correlation_id(),
        ))
        st.download_button(
            "📥 Download report",
            data=content,
            file_name=f"finance_report_{date.today():%Y%m%d}.xlsx",
            mime=XLSX_MIME,
        )


def render_settings_page(components: AppComponents):
    """Render the settings page."""
    st.title("⚙️ Settings")

    st.markdown("### Connection Status")

    from bizledger.config import validate_all_settings

    status = validate_all_settings()

    services = [
        ("Google Sheets (Storage)", "google_sheets"),
        ("Gemini (AI)", "gemini"),
        ("Application", "app"),
    ]

    for name, key in services:
        if status.get(key, False):
            st.success(f"✅ {name} - Configured")
        else:
            error = status.get(f"{key}_error", "Not configured")
            st.error(f"❌ {name} - {error}")

    backend = "Google Sheets" if components.sheets_client else "In memory"
    st.markdown(f"**Storage in use:** {backend}")

    st.markdown("---")
    st.markdown("### Configuration")
    st.markdown(
        "To configure the application, create a `.env` file with your API keys. "
        "See `.env.example` for the required variables."
    )


if __name__ == "__main__":
    main()
