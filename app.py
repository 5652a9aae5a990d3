"""
Nurse Shift Scheduling System - Streamlit UI
Monthly day/late/night rota for two-shift and three-shift ward staff
"""

import calendar
import logging

import streamlit as st
import pandas as pd

from utils import (
    create_coverage_dataframe,
    create_schedule_dataframe,
    create_statistics_dataframe,
    export_schedule_to_csv,
    format_day_header,
    get_days_in_month,
    get_default_staff_data,
    get_shift_color,
    is_weekend_or_holiday,
    parse_day_list,
    staff_to_dataframe,
    validate_staff_data,
)
from scheduler_logic import (
    CellKey,
    ShiftSystem,
    create_staff_from_dataframe,
    generate_schedule,
    get_daily_stats,
    get_staff_stats,
)
from validation import check_cell_warning, collect_warnings
import roster
import storage

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

ERASER = "__eraser__"


# Page configuration
st.set_page_config(
    page_title="Nurse Shift Scheduler",
    page_icon="🏥",
    layout="wide",
    initial_sidebar_state="expanded",
)

st.markdown("""
<style>
    .stDataFrame { font-size: 12px; }
    div[data-testid="stMetricValue"] { font-size: 24px; }
</style>
""", unsafe_allow_html=True)


def init_session_state():
    """Initialize session state variables."""
    if "document" not in st.session_state:
        st.session_state.document = storage.load_document()


def persist():
    """Write the current document to disk; a failed save is reported, not fatal."""
    try:
        storage.save_document(st.session_state.document)
    except OSError as e:
        logger.warning(f"Could not save state: {e}")
        st.warning(f"Could not save state: {e}")


def render_sidebar():
    """Render the sidebar with month, holiday and headcount settings."""
    document = st.session_state.document
    st.sidebar.header("Schedule Configuration")

    col1, col2 = st.sidebar.columns(2)
    with col1:
        year = st.number_input(
            "Year",
            min_value=2020,
            max_value=2040,
            value=document.year,
            step=1,
        )
    with col2:
        month = st.selectbox(
            "Month",
            options=list(range(1, 13)),
            format_func=lambda x: calendar.month_name[x],
            index=document.month - 1,
        )

    st.sidebar.divider()

    st.sidebar.subheader("Holidays")
    holidays_str = st.sidebar.text_input(
        "Extra holidays (treated like weekends)",
        value=",".join(str(d) for d in document.holidays),
        help="Day numbers separated by commas (e.g., 3,29), ranges (e.g., 28-30) or full dates",
    )

    st.sidebar.divider()

    st.sidebar.subheader("Daily Targets")
    settings = document.settings
    target_night = st.sidebar.number_input("Night per day", min_value=0, max_value=20, value=settings.target_night)
    target_late = st.sidebar.number_input("Late per day", min_value=0, max_value=20, value=settings.target_late)
    target_day_weekday = st.sidebar.number_input(
        "Day shift (weekday)", min_value=0, max_value=60, value=settings.target_day_weekday
    )
    target_day_weekend = st.sidebar.number_input(
        "Day shift (weekend/holiday)", min_value=0, max_value=60, value=settings.target_day_weekend
    )

    st.sidebar.divider()

    st.sidebar.subheader("Shift Legend")
    st.sidebar.markdown("\n".join(f"- **{d.symbol}** = {d.name}" for d in document.shift_types))

    changed = (
        (int(year), int(month)) != (document.year, document.month)
        or parse_day_list(holidays_str, int(year), int(month)) != document.holidays
        or (target_night, target_late, target_day_weekday, target_day_weekend)
        != (settings.target_night, settings.target_late, settings.target_day_weekday, settings.target_day_weekend)
    )
    if changed:
        document.current_date = document.current_date.replace(year=int(year), month=int(month))
        document.holidays = parse_day_list(holidays_str, int(year), int(month))
        settings.target_night = int(target_night)
        settings.target_late = int(target_late)
        settings.target_day_weekday = int(target_day_weekday)
        settings.target_day_weekend = int(target_day_weekend)
        persist()


def run_generation():
    """Regenerate everything that is not locked. The old schedule stays on failure."""
    document = st.session_state.document
    if not document.staff_list:
        st.error("No staff members configured!")
        return

    try:
        with st.spinner("Generating schedule..."):
            new_schedule = generate_schedule(
                document.schedule,
                document.locked_cells,
                document.staff_list,
                document.year,
                document.month,
                document.settings,
                ng_pairs=document.ng_pairs,
                holidays=document.holidays,
            )
    except Exception:
        logger.exception("Schedule generation failed")
        st.error("Schedule generation failed. The previous schedule was kept.")
        return

    document.schedule = new_schedule
    persist()
    st.success("Schedule generated!")


def build_cell_styles(schedule_df: pd.DataFrame) -> pd.DataFrame:
    """CSS per cell: shift colour, locked border, warning text and weekend shading."""
    document = st.session_state.document
    styles = pd.DataFrame("", index=schedule_df.index, columns=schedule_df.columns)
    num_days = get_days_in_month(document.year, document.month)

    for row, person in enumerate(document.staff_list):
        for day in range(1, num_days + 1):
            key = CellKey(person.id, day)
            shift = document.schedule.get(key)
            css = []
            if shift is not None:
                css.append(f"background-color: {get_shift_color(shift, document.shift_types)}")
            elif is_weekend_or_holiday(document.year, document.month, day, document.holidays):
                css.append("background-color: #FEF3C7")
            if key in document.locked_cells:
                css.append("font-weight: bold; border: 2px solid #6366F1")
            if check_cell_warning(document.schedule, person, day, document.ng_pairs):
                css.append("color: #DC2626")
            styles.iat[row, day - 1] = "; ".join(css)
    return styles


def get_schedule_view() -> pd.DataFrame:
    document = st.session_state.document
    schedule_df = create_schedule_dataframe(
        document.staff_list, document.year, document.month, document.schedule, document.shift_types
    )
    # Styler needs unique row labels
    schedule_df.index = [f"{s.id}. {s.name}" for s in document.staff_list]
    schedule_df.columns = [
        format_day_header(document.year, document.month, int(col)) for col in schedule_df.columns
    ]
    return schedule_df


def render_schedule_table():
    """Render the schedule grid."""
    document = st.session_state.document
    st.subheader(f"{calendar.month_name[document.month]} {document.year}")

    if not document.staff_list:
        st.info("Add staff in the Staff tab first.")
        return

    schedule_df = get_schedule_view()
    styles = build_cell_styles(schedule_df)

    styled_df = schedule_df.style.apply(lambda _: styles, axis=None)
    st.dataframe(styled_df, use_container_width=True, height=min(60 + 35 * len(document.staff_list), 900))

    st.caption("Bold border = locked (kept on regenerate). Red text = rule warning. Shaded empty cells = weekend/holiday.")


def render_cell_editor():
    """Manual edit of one cell, as the palette click does in the grid."""
    document = st.session_state.document
    if not document.staff_list:
        return

    st.markdown("**Edit Cell**")
    request_mode = st.toggle(
        "Request mode",
        value=False,
        help="Refuse night/late requests once that day's target is reached",
    )

    tools = [d.id for d in document.shift_types] + [ERASER]
    labels = {d.id: f"{d.symbol} {d.name}" for d in document.shift_types}
    labels[ERASER] = "Erase"
    staff_labels = {s.id: f"{s.id}. {s.name}" for s in document.staff_list}

    with st.form("cell_editor_form"):
        col1, col2, col3, col4 = st.columns([3, 1, 2, 1])
        with col1:
            staff_id = st.selectbox("Staff", options=list(staff_labels), format_func=staff_labels.get)
        with col2:
            day = st.number_input(
                "Day", min_value=1, max_value=get_days_in_month(document.year, document.month), value=1
            )
        with col3:
            tool = st.selectbox("Shift", options=tools, format_func=labels.get)
        with col4:
            st.write("")
            apply_clicked = st.form_submit_button("Apply", type="primary")

    if apply_clicked:
        try:
            if tool == ERASER:
                roster.erase_cell(document, staff_id, int(day))
            else:
                roster.apply_manual_shift(document, staff_id, int(day), tool, request_mode=request_mode)
        except ValueError as e:
            st.warning(str(e))
        else:
            persist()
            st.rerun()


def render_warnings():
    document = st.session_state.document
    warnings = collect_warnings(
        document.schedule, document.staff_list, document.year, document.month, document.ng_pairs
    )
    if warnings:
        with st.expander(f"**Rule Warnings ({len(warnings)})**", expanded=False):
            st.dataframe(pd.DataFrame(warnings), use_container_width=True, hide_index=True)


def render_coverage_summary():
    """Render daily coverage against the targets."""
    document = st.session_state.document
    with st.expander("Daily Coverage Details"):
        daily = get_daily_stats(
            document.schedule,
            document.staff_list,
            document.year,
            document.month,
            document.settings,
            document.holidays,
        )
        coverage_df = create_coverage_dataframe(daily)
        st.dataframe(coverage_df, use_container_width=True, hide_index=True)


def render_statistics():
    """Render per-staff statistics."""
    document = st.session_state.document
    if not document.schedule:
        st.info("Generate a schedule to view statistics.")
        return

    staff_stats = get_staff_stats(document.schedule, document.staff_list, document.year, document.month)
    stats_df = create_statistics_dataframe(document.staff_list, staff_stats)

    col1, col2, col3 = st.columns(3)
    with col1:
        st.metric("Avg Night", f"{stats_df['Night'].mean():.1f}", delta=f"Range: {stats_df['Night'].min()}-{stats_df['Night'].max()}")
    with col2:
        st.metric("Avg Late", f"{stats_df['Late'].mean():.1f}", delta=f"Range: {stats_df['Late'].min()}-{stats_df['Late'].max()}")
    with col3:
        off_target = int(stats_df["Off Target"].iloc[0]) if not stats_df.empty else 0
        short = int((stats_df["Off Diff"] < 0).sum())
        st.metric("Off Target", off_target, delta=f"{short} below target", delta_color="inverse")

    over_limit = {
        person.name for person in document.staff_list
        if staff_stats[person.id]["night_over_limit"] or staff_stats[person.id]["late_over_limit"]
    }

    def highlight_heavy(row):
        if row["Name"] in over_limit:
            return ["background-color: #FFCCCB"] * len(row)
        return [""] * len(row)

    st.dataframe(stats_df.style.apply(highlight_heavy, axis=1), use_container_width=True, hide_index=True)


def render_export_options():
    """Render export, backup and restore options."""
    document = st.session_state.document
    st.subheader("Export / Backup")

    col1, col2, col3 = st.columns(3)

    with col1:
        schedule_df = create_schedule_dataframe(
            document.staff_list, document.year, document.month, document.schedule, document.shift_types
        )
        staff_stats = get_staff_stats(document.schedule, document.staff_list, document.year, document.month)
        stats_df = create_statistics_dataframe(document.staff_list, staff_stats)
        st.download_button(
            label="Download Schedule (CSV)",
            data=export_schedule_to_csv(schedule_df, stats_df),
            file_name=f"schedule_{document.year}_{document.month:02d}.csv",
            mime="text/csv",
        )

    with col2:
        st.download_button(
            label="Download Backup (JSON)",
            data=storage.export_document_json(document),
            file_name=storage.export_filename(document),
            mime="application/json",
        )

    with col3:
        if st.button("Clear Schedule", help="Remove every cell and lock"):
            roster.clear_schedule(document)
            persist()
            st.rerun()

    uploaded_file = st.file_uploader("Restore from backup (JSON)", type=["json"])
    if uploaded_file is not None and st.button("Import Backup"):
        try:
            st.session_state.document = storage.import_document_json(uploaded_file.getvalue())
        except ValueError as e:
            st.error(f"Import failed: {e}")
        else:
            persist()
            st.success("Backup imported!")
            st.rerun()


def render_staff_editor():
    """Render the staff data editor."""
    document = st.session_state.document
    st.subheader("Staff Configuration")
    st.caption("Edit the table below, then click **Save Changes**. Removing a row also removes that person's shifts, locks and NG pairs.")

    column_config = {
        "ID": st.column_config.NumberColumn("ID", min_value=1, step=1, width="small"),
        "Name": st.column_config.TextColumn("Name", required=True, width="medium"),
        "Role": st.column_config.SelectboxColumn(
            "Role",
            options=["Manager", "Nurse", "Assistant"],
            width="small",
        ),
        "ShiftSystem": st.column_config.SelectboxColumn(
            "Shift System",
            options=[s.value for s in ShiftSystem],
            required=True,
            width="small",
        ),
    }

    with st.form("staff_editor_form"):
        edited_df = st.data_editor(
            staff_to_dataframe(document.staff_list),
            column_config=column_config,
            num_rows="dynamic",
            use_container_width=True,
            hide_index=True,
        )

        col1, col2 = st.columns([1, 4])
        with col1:
            save_clicked = st.form_submit_button("Save Changes", type="primary")

    if save_clicked:
        is_valid, message = validate_staff_data(edited_df)
        if not is_valid:
            st.error(message)
        else:
            try:
                roster.set_staff_list(document, create_staff_from_dataframe(edited_df))
            except ValueError as e:
                st.error(str(e))
            else:
                persist()
                st.success("Changes saved!")
                st.rerun()

    if st.button("Reset to Default Staff"):
        roster.set_staff_list(document, create_staff_from_dataframe(get_default_staff_data()))
        persist()
        st.rerun()

    two = sum(1 for s in document.staff_list if s.is_two_shift)
    st.caption(f"Staff count: {len(document.staff_list)} ({two} two-shift, {len(document.staff_list) - two} three-shift)")


def render_ng_pairs():
    """Render NG pair management."""
    document = st.session_state.document
    st.subheader("NG Pairs")
    st.caption("Staff in an NG pair are never put on late/night shifts on the same day.")

    staff_labels = {s.id: f"{s.id}. {s.name}" for s in document.staff_list}
    if len(staff_labels) < 2:
        st.info("At least two staff members are needed.")
        return

    with st.form("ng_pair_form"):
        col1, col2, col3 = st.columns([2, 2, 1])
        with col1:
            staff1 = st.selectbox("Staff 1", options=list(staff_labels), format_func=staff_labels.get)
        with col2:
            staff2 = st.selectbox("Staff 2", options=list(staff_labels), format_func=staff_labels.get, index=1)
        with col3:
            st.write("")
            add_clicked = st.form_submit_button("Add Pair", type="primary")

    if add_clicked:
        try:
            roster.add_ng_pair(document, staff1, staff2)
        except ValueError as e:
            st.error(str(e))
        else:
            persist()
            st.rerun()

    if not document.ng_pairs:
        st.info("No NG pairs registered.")
        return

    for pair in document.ng_pairs:
        col1, col2 = st.columns([4, 1])
        with col1:
            st.markdown(
                f"**{staff_labels.get(pair.staff1, pair.staff1)}** ✕ **{staff_labels.get(pair.staff2, pair.staff2)}**"
            )
        with col2:
            if st.button("Remove", key=f"remove_ng_{pair.id}"):
                roster.remove_ng_pair(document, pair.id)
                persist()
                st.rerun()


def main():
    """Main application entry point."""
    st.title("Nurse Shift Scheduling System")
    st.caption("Monthly day / late / night rota with locked requests and NG pairs")

    init_session_state()
    render_sidebar()

    tab1, tab2, tab3, tab4 = st.tabs(["Schedule", "Statistics", "Staff", "NG Pairs"])

    with tab1:
        if st.button(
            "Generate Schedule",
            type="primary",
            disabled=not st.session_state.document.staff_list,
            use_container_width=True,
        ):
            run_generation()
        render_schedule_table()
        render_cell_editor()
        render_warnings()
        render_coverage_summary()
        st.divider()
        render_export_options()

    with tab2:
        render_statistics()

    with tab3:
        render_staff_editor()

    with tab4:
        render_ng_pairs()


if __name__ == "__main__":
    main()
