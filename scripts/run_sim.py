import logging

from vebalance.params import LedgerParams
from vebalance.simulation import LedgerSimulation, SimulationParams

logging.basicConfig(level=logging.WARNING)

params = SimulationParams(
    epochs=52,
    num_users=25,
    num_delegates=4,
    base_lock_rate=6.0,
    mean_principal=1000,
    min_lock_epochs=2,
    max_lock_epochs=25,
    delegate_probability=0.1,
    switch_probability=0.05,
    undelegate_probability=0.03,
    increase_probability=0.05,
    escrowed_share=0.25,
    seed=7,
    ledger=LedgerParams(),
)

sim = LedgerSimulation(params, verbose=True)

# Run simulation
sim.run()
df = sim.history_frame()
print(df[['epoch', 'total_supply', 'personal_power', 'delegated_power', 'conservation_gap_bias']].to_string())
