from experiment import BackgroundThreshold, SupervisedLearning
from plotting import plot_staircase
import matplotlib.pyplot as plt

subject = "sub_01"
group = "elderly"

# Background thresholding =====================================
threshold = BackgroundThreshold(subject, group=group)
threshold.run_sequence()
background_estimate = threshold.background_estimate

# Learning blocks (odd: easy background, even: difficult) =====
learning = SupervisedLearning(subject, background_estimate, group=group)
df_log = learning.run_sequence()

plot_staircase(df_log, mode="all", subject=subject)
plt.show()
