import streamlit as st
import altair as alt
import pandas as pd

from vebalance.params import LedgerParams
from vebalance.simulation import LedgerSimulation, SimulationParams
from vebalance.constants import DAY

st.set_page_config(layout="wide")


def create_simulation_inputs():
    st.sidebar.header("Simulation Parameters")

    with st.sidebar.expander("Ledger Parameters"):
        epoch_days = st.number_input(
            "Epoch Duration (days)",
            value=28,
            min_value=1,
            step=1,
            help="Length of one epoch. Lock expiries and delegation changes align to epoch boundaries."
        )
        max_lock_epochs = st.number_input(
            "Max Lock Duration (epochs)",
            value=26,
            min_value=3,
            step=1,
            help="Longest lock allowed. Slopes are principal divided by this duration."
        )
        max_actions = st.number_input(
            "Delegate Actions per Epoch",
            value=2,
            min_value=1,
            step=1,
            help="How many delegate / switch / undelegate calls one lock may make per epoch."
        )

    with st.sidebar.expander("Locking Parameters"):
        base_lock_rate = st.slider(
            "Lock Rate",
            0.0, 20.0, 5.0, 0.5,
            help="Expected number of new locks per epoch (Poisson rate)."
        )
        mean_principal = st.number_input(
            "Median Principal",
            value=1000,
            step=100,
            help="Median lock size in whole tokens. Sizes are lognormally distributed."
        )
        min_lock_epochs = st.number_input("Min Lock Epochs", value=2, min_value=2, step=1)
        max_lock_epochs_sim = st.number_input(
            "Max Lock Epochs",
            value=int(max_lock_epochs) - 1,
            min_value=2,
            max_value=int(max_lock_epochs) - 1,
            step=1
        )
        escrowed_share = st.slider("Escrowed Share", 0.0, 1.0, 0.0, 0.05)
        increase_probability = st.slider("Increase Probability", 0.0, 1.0, 0.05, 0.01)

    with st.sidebar.expander("Delegation Parameters"):
        num_users = st.number_input("Users", value=20, min_value=1, step=1)
        num_delegates = st.number_input("Delegates", value=3, min_value=0, step=1)
        delegate_probability = st.slider("Delegate Probability", 0.0, 1.0, 0.1, 0.01)
        switch_probability = st.slider("Switch Probability", 0.0, 1.0, 0.05, 0.01)
        undelegate_probability = st.slider("Undelegate Probability", 0.0, 1.0, 0.05, 0.01)

    with st.sidebar.expander("General Parameters"):
        epochs = st.number_input("Epochs to Simulate", value=40, step=1, min_value=1)
        seed = st.number_input("Random Seed", value=7, step=1)

    return {
        "ledger": {
            "epoch_duration": int(epoch_days) * DAY,
            "max_lock_duration": int(max_lock_epochs) * int(epoch_days) * DAY,
            "max_delegate_actions_per_epoch": int(max_actions),
        },
        "locking": {
            "base_lock_rate": base_lock_rate,
            "mean_principal": float(mean_principal),
            "min_lock_epochs": int(min_lock_epochs),
            "max_lock_epochs": int(max_lock_epochs_sim),
            "escrowed_share": escrowed_share,
            "increase_probability": increase_probability,
        },
        "delegation": {
            "num_users": int(num_users),
            "num_delegates": int(num_delegates),
            "delegate_probability": delegate_probability,
            "switch_probability": switch_probability,
            "undelegate_probability": undelegate_probability,
        },
        "general": {
            "epochs": int(epochs),
            "seed": int(seed),
        },
    }


def create_simulation(config):
    params = SimulationParams(
        ledger=LedgerParams.from_dict(config["ledger"]),
        **config["locking"],
        **config["delegation"],
        **config["general"],
    )
    return LedgerSimulation(params)


def create_supply_tab(df):
    st.header("Voting Power")

    col1, col2 = st.columns(2)

    with col1:
        supply_chart = alt.Chart(df).transform_fold(
            ['total_supply', 'personal_power', 'delegated_power'],
            as_=['metric', 'value']
        ).mark_line().encode(
            x=alt.X('epoch:Q', title='Epoch'),
            y=alt.Y('value:Q', title='Voting Power'),
            color=alt.Color('metric:N', title='Metric')
        ).properties(
            title='Live Voting Power by Pocket',
            width=400,
            height=300
        )
        st.altair_chart(supply_chart, use_container_width=True)

        finalized_chart = alt.Chart(df.dropna(subset=['finalized_previous_epoch'])).mark_bar().encode(
            x=alt.X('epoch:O', title='Epoch'),
            y=alt.Y('finalized_previous_epoch:Q', title='Total Supply'),
        ).properties(
            title='Finalized Total Supply (previous epoch end)',
            width=400,
            height=300
        )
        st.altair_chart(finalized_chart, use_container_width=True)

    with col2:
        locked_chart = alt.Chart(df).transform_fold(
            ['locked_primary', 'locked_escrowed'],
            as_=['asset', 'value']
        ).mark_area().encode(
            x=alt.X('epoch:Q', title='Epoch'),
            y=alt.Y('value:Q', title='Locked Principal', stack=True),
            color=alt.Color('asset:N', title='Asset')
        ).properties(
            title='Locked Principal',
            width=400,
            height=300
        )
        st.altair_chart(locked_chart, use_container_width=True)

        gap_chart = alt.Chart(df).transform_fold(
            ['conservation_gap_bias', 'conservation_gap_slope'],
            as_=['component', 'value']
        ).mark_line().encode(
            x=alt.X('epoch:Q', title='Epoch'),
            y=alt.Y('value:Q', title='Global − Σ pockets'),
            color=alt.Color('component:N', title='Component')
        ).properties(
            title='Conservation Gap (should stay at zero)',
            width=400,
            height=300
        )
        st.altair_chart(gap_chart, use_container_width=True)


def create_delegation_tab(sim, df):
    st.header("Delegation")

    col1, col2 = st.columns(2)

    with col1:
        state_chart = alt.Chart(df).transform_fold(
            ['active_locks', 'pending_delegations', 'active_delegations'],
            as_=['state', 'count']
        ).mark_line().encode(
            x=alt.X('epoch:Q', title='Epoch'),
            y=alt.Y('count:Q', title='Locks'),
            color=alt.Color('state:N', title='State')
        ).properties(
            title='Lock Delegation States',
            width=400,
            height=300
        )
        st.altair_chart(state_chart, use_container_width=True)

    with col2:
        share_rows = []
        for record in sim.history:
            epoch = sim.ledger.epochs.epoch_of(record['timestamp'])
            for delegate, share in sim.delegate_shares(epoch).items():
                share_rows.append({'epoch': record['epoch'], 'delegate': delegate, 'share': share})
        if share_rows:
            share_chart = alt.Chart(pd.DataFrame(share_rows)).mark_area().encode(
                x=alt.X('epoch:Q', title='Epoch'),
                y=alt.Y('share:Q', title='Share of Delegated Vote Weight', stack='normalize'),
                color=alt.Color('delegate:N', title='Delegate')
            ).properties(
                title='Delegate Vote Weight (benchmarked at epoch end)',
                width=400,
                height=300
            )
            st.altair_chart(share_chart, use_container_width=True)
        else:
            st.info("No delegates configured.")


def create_activity_tab(sim, df):
    st.header("Activity")

    activity_chart = alt.Chart(df).transform_fold(
        ['actions', 'rejected_actions'],
        as_=['kind', 'count']
    ).mark_bar().encode(
        x=alt.X('epoch:O', title='Epoch'),
        y=alt.Y('count:Q', title='Actions'),
        color=alt.Color('kind:N', title='Outcome')
    ).properties(
        title='Accepted vs Rejected Actions',
        height=300
    )
    st.altair_chart(activity_chart, use_container_width=True)

    events = sim.events_frame()
    if not events.empty:
        st.dataframe(events.groupby(['type', 'accepted']).size().rename('count').reset_index())


def main():
    st.title("VeBalance Ledger Simulation")

    inputs = create_simulation_inputs()

    if st.sidebar.button("Run Simulation"):
        try:
            sim = create_simulation(inputs)
        except ValueError as exc:
            st.error(str(exc))
            st.stop()

        sim.run()
        df = sim.history_frame()

        tab1, tab2, tab3 = st.tabs(["Voting Power", "Delegation", "Activity"])

        with tab1:
            create_supply_tab(df)

        with tab2:
            create_delegation_tab(sim, df)

        with tab3:
            create_activity_tab(sim, df)


if __name__ == "__main__":
    main()
