"""Google Congestion Control: delay- and loss-based send-side bandwidth estimation and pacing."""